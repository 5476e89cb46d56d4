from __future__ import annotations


class TileTreeError(RuntimeError):
    pass


class InvalidArgumentError(TileTreeError, ValueError):
    pass


class BuildCancelledError(TileTreeError):
    pass


class RecordDecodeError(TileTreeError, ValueError):
    pass
