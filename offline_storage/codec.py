"""
Reversible obfuscation codec for stored values.

Values are serialized to JSON, XOR-scrambled against a repeating secret key
stream and base64 encoded so the result is printable text safe for any
backing medium.

This is casual obfuscation only. It is not encryption and offers no
confidentiality against anyone holding the stored text and some patience.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from .exceptions import DecodeError, InvalidKeyError, NotInitializedError

MIN_SECRET_LENGTH = 16


class ObfuscationCodec:
    """Keyed, reversible value scrambler.

    The codec holds a single secret. It must be initialized before use and
    can be reset for key rotation or test teardown.
    """

    def __init__(self, secret: str | None = None):
        self._key: bytes | None = None
        if secret is not None:
            self.initialize(secret)

    @property
    def is_initialized(self) -> bool:
        return self._key is not None

    def initialize(self, secret: str) -> None:
        """Set the secret used by encode/decode.

        Raises:
            InvalidKeyError: If the secret is empty or shorter than 16 characters
        """
        if not secret or len(secret) < MIN_SECRET_LENGTH:
            raise InvalidKeyError(MIN_SECRET_LENGTH)
        self._key = secret.encode("utf-8")

    def reset(self) -> None:
        """Forget the secret."""
        self._key = None

    def encode(self, value: Any) -> str:
        """Obfuscate a JSON-serializable value into opaque text."""
        key = self._require_key()
        raw = json.dumps(value).encode("utf-8")
        return base64.b64encode(self._xor(raw, key)).decode("ascii")

    def decode(self, text: str) -> Any:
        """Recover the value from text produced by encode.

        Raises:
            NotInitializedError: If no secret is set
            DecodeError: If the text is not valid base64 or does not
                decode to the original serialization
        """
        key = self._require_key()
        if not isinstance(text, str):
            raise DecodeError(f"expected str, got {type(text).__name__}")

        try:
            scrambled = base64.b64decode(text.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise DecodeError("invalid base64 text", e) from e

        try:
            return json.loads(self._xor(scrambled, key).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError("payload is not valid serialized data", e) from e

    def _require_key(self) -> bytes:
        if self._key is None:
            raise NotInitializedError()
        return self._key

    @staticmethod
    def _xor(data: bytes, key: bytes) -> bytes:
        key_len = len(key)
        return bytes(b ^ key[i % key_len] for i, b in enumerate(data))
