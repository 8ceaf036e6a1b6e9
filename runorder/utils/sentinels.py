"""Sentinel for builder arguments the caller did not pass.

Adapted from RLLib's _NotProvided:
https://github.com/ray-project/ray/rllib/utils/from_config.py#L261
"""

from __future__ import annotations


class _NotProvided:

    class __NotProvided:
        pass

    instance = None

    def __init__(self):
        if _NotProvided.instance is None:
            _NotProvided.instance = _NotProvided.__NotProvided()

    def __repr__(self) -> str:
        return "NotProvided"


NotProvided = _NotProvided
