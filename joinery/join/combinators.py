"""
Constructors for joined operations.

Fixed arity (two or more heterogeneous operations, tuple results):

    zip(a, b, c)            -> (out_a, out_b, out_c)
    try_zip(a, b)           -> Ok((va, vb)) | Err(first_error)
    race(a, b)              -> output of whichever finished first
    race_ok(a, b)           -> Ok(first_success) | Err((err_a, err_b))

Collection variants take any iterable and produce lists:
zip_all, try_zip_all, race_all, race_ok_all.

Every constructor returns a JoinDriver, which is itself an Operation, so
joins nest: race(zip(a, b), sleep(1.0)).
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from joinery.config import EngineSettings
from joinery.core.driver import JoinDriver, JoinPolicy
from joinery.core.poll import Classifier, default_classify
from joinery.core.protocols import Operation
from joinery.core.slot import TransitionObserver

from .policies import RaceOkPolicy, RacePolicy, TryZipPolicy, ZipPolicy


def _fixed(operations: tuple[Operation[Any], ...], combinator: str) -> tuple[Operation[Any], ...]:
    if len(operations) < 2:
        raise TypeError(
            f"{combinator}() takes at least two operations, got {len(operations)}; "
            f"use {combinator}_all() for collections"
        )
    return operations


def _nonempty(operations: Iterable[Operation[Any]], combinator: str) -> list[Operation[Any]]:
    ops = list(operations)
    if not ops:
        raise ValueError(f"{combinator}() needs at least one operation")
    return ops


def _build(
    operations: Iterable[Operation[Any]],
    policy: JoinPolicy[Any],
    observer: Optional[TransitionObserver],
    settings: Optional[EngineSettings],
) -> JoinDriver[Any]:
    return JoinDriver(operations, policy, observer=observer, settings=settings)


def zip(
    *operations: Operation[Any],
    observer: Optional[TransitionObserver] = None,
    settings: Optional[EngineSettings] = None,
) -> JoinDriver[tuple[Any, ...]]:
    """Wait for all operations; outputs in argument order."""
    return _build(_fixed(operations, "zip"), ZipPolicy(tuple), observer, settings)


def try_zip(
    *operations: Operation[Any],
    classify: Classifier = default_classify,
    observer: Optional[TransitionObserver] = None,
    settings: Optional[EngineSettings] = None,
) -> JoinDriver[Any]:
    """Wait for all operations, cancelling the rest at the first error."""
    return _build(
        _fixed(operations, "try_zip"), TryZipPolicy(classify, tuple), observer, settings
    )


def race(
    *operations: Operation[Any],
    observer: Optional[TransitionObserver] = None,
    settings: Optional[EngineSettings] = None,
) -> JoinDriver[Any]:
    """Output of the first operation to finish; the others are cancelled."""
    return _build(_fixed(operations, "race"), RacePolicy(), observer, settings)


def race_ok(
    *operations: Operation[Any],
    classify: Classifier = default_classify,
    observer: Optional[TransitionObserver] = None,
    settings: Optional[EngineSettings] = None,
) -> JoinDriver[Any]:
    """First success, or every error in argument order if none succeeds."""
    return _build(
        _fixed(operations, "race_ok"), RaceOkPolicy(classify, tuple), observer, settings
    )


def zip_all(
    operations: Iterable[Operation[Any]],
    *,
    observer: Optional[TransitionObserver] = None,
    settings: Optional[EngineSettings] = None,
) -> JoinDriver[list[Any]]:
    return _build(operations, ZipPolicy(list), observer, settings)


def try_zip_all(
    operations: Iterable[Operation[Any]],
    *,
    classify: Classifier = default_classify,
    observer: Optional[TransitionObserver] = None,
    settings: Optional[EngineSettings] = None,
) -> JoinDriver[Any]:
    return _build(operations, TryZipPolicy(classify, list), observer, settings)


def race_all(
    operations: Iterable[Operation[Any]],
    *,
    observer: Optional[TransitionObserver] = None,
    settings: Optional[EngineSettings] = None,
) -> JoinDriver[Any]:
    return _build(_nonempty(operations, "race_all"), RacePolicy(), observer, settings)


def race_ok_all(
    operations: Iterable[Operation[Any]],
    *,
    classify: Classifier = default_classify,
    observer: Optional[TransitionObserver] = None,
    settings: Optional[EngineSettings] = None,
) -> JoinDriver[Any]:
    return _build(
        _nonempty(operations, "race_ok_all"),
        RaceOkPolicy(classify, list),
        observer,
        settings,
    )
