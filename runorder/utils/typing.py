from __future__ import annotations

import typing

SessionID = typing.NewType("SessionID", str)
ConnectionID = typing.NewType("ConnectionID", str)
ItemID = typing.NewType("ItemID", str)
