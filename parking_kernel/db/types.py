"""
Module: parking_kernel.db.types
Responsibility: Annotated column aliases shared by the ORM models and the
    column type each one maps to (``COLUMN_TYPES``, merged into
    ``Base.type_annotation_map``).
Architecture position: Kernel > DB.  Imported by db/base.py and models/.

Money columns hold CLP amounts with 2 fractional digits; rounding to that
scale happens in the domain (``values.to_money``) before anything reaches
the database.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, SmallInteger, String, Text

# Monetary amount, 12 integer digits and 2 decimal places
Money = Annotated[Decimal, "money"]

# Foreign identifiers (sessions, shifts, operators, devices)
Identifier = Annotated[str, "identifier"]

# Enum values stored as their string value
Code = Annotated[str, "code"]

# Vehicle plate, normalized upper-case without spaces
Plate = Annotated[str, "plate"]

# Weekday bitmask (bit 0 = Sunday)
DayMask = Annotated[int, "day_mask"]

# Free text
Notes = Annotated[str, "notes"]

COLUMN_TYPES = {
    Money: Numeric(14, 2),
    Identifier: String(36),
    Code: String(32),
    Plate: String(16),
    DayMask: SmallInteger(),
    Notes: Text(),
}
