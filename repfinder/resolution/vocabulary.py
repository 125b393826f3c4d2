"""Office-title and scope vocabulary for level disambiguation.

Constants-only module: the single source of truth for which government
level an office title or a jurisdiction-scope type belongs to. The
collision resolver imports these tables instead of embedding title
strings. No classes with methods. No runtime computation.

Keys are lowercase with single spaces; callers normalize before lookup.
"""

# ---------------------------------------------------------------------------
# 1. Exact title -> level
# ---------------------------------------------------------------------------

TITLE_TAXONOMY: dict[str, str] = {
    # federal
    "u.s. senator": "federal",
    "united states senator": "federal",
    "senator (u.s.)": "federal",
    "u.s. representative": "federal",
    "united states representative": "federal",
    "representative": "federal",
    "member of congress": "federal",
    # state
    "state senator": "state",
    # a bare "Senator" is a state legislator; federal titles are qualified
    "senator": "state",
    "california state senator": "state",
    "assembly member": "state",
    "assemblymember": "state",
    "assemblyman": "state",
    "assemblywoman": "state",
    "governor": "state",
    "lieutenant governor": "state",
    "attorney general": "state",
    "secretary of state": "state",
    "state controller": "state",
    "state treasurer": "state",
    "insurance commissioner": "state",
    "superintendent of public instruction": "state",
    # county
    "supervisor": "county",
    "county supervisor": "county",
    "chair of the board of supervisors": "county",
    "president of the board of supervisors": "county",
    "sheriff": "county",
    "sheriff-coroner": "county",
    "assessor": "county",
    "district attorney": "county",
    "auditor-controller": "county",
    "treasurer-tax collector": "county",
    "county clerk-recorder": "county",
    "clerk-recorder": "county",
    "public defender": "county",
    # municipal
    "mayor": "municipal",
    "vice mayor": "municipal",
    "mayor pro tem": "municipal",
    "council member": "municipal",
    "councilmember": "municipal",
    "city council member": "municipal",
    "councilman": "municipal",
    "councilwoman": "municipal",
    "city attorney": "municipal",
    "city clerk": "municipal",
    "city treasurer": "municipal",
    "city controller": "municipal",
}
"""Exact office title -> government level."""


# ---------------------------------------------------------------------------
# 2. Title keyword -> level (checked in order when no exact title matches)
# ---------------------------------------------------------------------------

TITLE_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("board of supervisors", "county"),
    ("supervisor", "county"),
    ("sheriff", "county"),
    ("county", "county"),
    ("mayor", "municipal"),
    ("city council", "municipal"),
    ("councilmember", "municipal"),
    ("council member", "municipal"),
    ("city ", "municipal"),
    ("assembly", "state"),
    ("state senat", "state"),
    ("u.s.", "federal"),
    ("congress", "federal"),
)
"""Substring fallbacks; the first keyword found in the title decides."""


# ---------------------------------------------------------------------------
# 3. Jurisdiction-scope type -> level
# ---------------------------------------------------------------------------

SCOPE_TYPE_LEVELS: dict[str, str] = {
    "country": "federal",
    "nation": "federal",
    "federal": "federal",
    "state": "state",
    "county": "county",
    "city": "municipal",
    "town": "municipal",
    "municipality": "municipal",
    "municipal": "municipal",
    "place": "municipal",
}
"""Upstream ``jurisdiction_scope["type"]`` values -> government level."""


# ---------------------------------------------------------------------------
# 4. Jurisdiction-name affixes stripped before grouping
# ---------------------------------------------------------------------------

JURISDICTION_PREFIXES: tuple[str, ...] = (
    "city and county of ",
    "county of ",
    "city of ",
    "town of ",
    "state of ",
)

JURISDICTION_SUFFIXES: tuple[str, ...] = (
    " county",
    " city",
)
