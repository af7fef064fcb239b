"""Static park factor table (5-year normalized, 100 = neutral)."""

NEUTRAL_PARK_FACTOR = 100

PARK_FACTORS: dict[str, dict[str, int | str]] = {
    "Coors Field": {"factor": 121, "hr": 118, "type": "hitter"},
    "Great American Ball Park": {"factor": 112, "hr": 115, "type": "hitter"},
    "Fenway Park": {"factor": 110, "hr": 99, "type": "hitter"},
    "Wrigley Field": {"factor": 108, "hr": 111, "type": "hitter"},
    "Globe Life Field": {"factor": 107, "hr": 108, "type": "hitter"},
    "American Family Field": {"factor": 106, "hr": 110, "type": "hitter"},
    "Yankee Stadium": {"factor": 105, "hr": 118, "type": "hitter"},
    "Camden Yards": {"factor": 105, "hr": 112, "type": "hitter"},
    "Rogers Centre": {"factor": 104, "hr": 107, "type": "hitter"},
    "Angel Stadium": {"factor": 104, "hr": 106, "type": "hitter"},
    "Citizens Bank Park": {"factor": 104, "hr": 110, "type": "hitter"},
    "Guaranteed Rate Field": {"factor": 103, "hr": 109, "type": "hitter"},
    "Truist Park": {"factor": 103, "hr": 105, "type": "hitter"},
    "Progressive Field": {"factor": 102, "hr": 101, "type": "neutral"},
    "Nationals Park": {"factor": 99, "hr": 103, "type": "neutral"},
    "Minute Maid Park": {"factor": 99, "hr": 100, "type": "neutral"},
    "Chase Field": {"factor": 99, "hr": 101, "type": "neutral"},
    "loanDepot Park": {"factor": 100, "hr": 97, "type": "neutral"},
    "Target Field": {"factor": 97, "hr": 102, "type": "pitcher"},
    "Busch Stadium": {"factor": 96, "hr": 93, "type": "pitcher"},
    "PNC Park": {"factor": 97, "hr": 97, "type": "pitcher"},
    "Kauffman Stadium": {"factor": 96, "hr": 95, "type": "pitcher"},
    "Citi Field": {"factor": 95, "hr": 92, "type": "pitcher"},
    "Tropicana Field": {"factor": 95, "hr": 92, "type": "pitcher"},
    "T-Mobile Park": {"factor": 97, "hr": 95, "type": "pitcher"},
    "Dodger Stadium": {"factor": 96, "hr": 94, "type": "pitcher"},
    "Oracle Park": {"factor": 94, "hr": 87, "type": "pitcher"},
    "Petco Park": {"factor": 93, "hr": 91, "type": "pitcher"},
    "Oakland Coliseum": {"factor": 92, "hr": 88, "type": "pitcher"},
    "Comerica Park": {"factor": 92, "hr": 88, "type": "pitcher"},
}

# Roofed parks where wind and temperature do not reach the field.
DOMED_VENUES: frozenset[str] = frozenset(
    {
        "Tropicana Field",
        "loanDepot Park",
        "Minute Maid Park",
        "Globe Life Field",
        "Rogers Centre",
        "Chase Field",
        "T-Mobile Park",
        "American Family Field",
    }
)


def park_factor(venue: str | None) -> int:
    """Return the run factor for *venue*, neutral when unknown."""

    entry = PARK_FACTORS.get(venue or "")
    if entry is None:
        return NEUTRAL_PARK_FACTOR
    return int(entry["factor"])
