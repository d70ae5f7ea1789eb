"""Join and race combinators built on the core driver."""

from joinery.join.combinators import (
    race,
    race_all,
    race_ok,
    race_ok_all,
    try_zip,
    try_zip_all,
    zip,
    zip_all,
)
from joinery.join.policies import RaceOkPolicy, RacePolicy, TryZipPolicy, ZipPolicy

__all__ = [
    # Fixed arity
    "zip",
    "try_zip",
    "race",
    "race_ok",
    # Collections
    "zip_all",
    "try_zip_all",
    "race_all",
    "race_ok_all",
    # Policies
    "ZipPolicy",
    "TryZipPolicy",
    "RacePolicy",
    "RaceOkPolicy",
]
