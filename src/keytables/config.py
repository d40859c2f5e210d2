"""Engine wide settings.

Settings are read from environment variables when the module
is imported, falling back to the default value of each setting.

* ``KEYTABLES_NOMATCH`` what key lookups return when no row matches,
  ``nullRow`` (one row of missing values) or ``omit`` (no rows).
* ``KEYTABLES_JOIN_SUFFIX`` the suffix appended to the columns of the
  right table of a join when their name is already used by the left table.
"""

from os import environ
from typing import Any


def get(key: str, default: Any = None) -> Any:
    """Read a setting from the environment.

    :param key: The name of the environment variable.
    :param default: The value to use when the variable is not set.
    """
    value = environ.get(key)
    if value is None:
        value = default
    return value


# fmt:off

# Default policy of lookups that don't match any row
NOMATCH: str = get("KEYTABLES_NOMATCH", "nullRow")
# Suffix for right side columns colliding with left side ones in joins
JOIN_SUFFIX: str = get("KEYTABLES_JOIN_SUFFIX", "_right")

# fmt:on
