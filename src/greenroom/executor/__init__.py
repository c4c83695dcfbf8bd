"""Encode execution."""

from greenroom.executor.encode import EncodeResult, WebmEncoder

__all__ = ["EncodeResult", "WebmEncoder"]
