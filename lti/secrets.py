#
# Copyright 2025 EDT&Partners
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

import os
import re
import base64
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from lti.config import MIN_ENCRYPTION_SECRET_LENGTH
from utility.exceptions import ConfigurationError, EncryptionError, DecryptionError
from logging_config import setup_logging

logger = setup_logging(module_name='lti_secrets')

# Stored layout: salt || iv || tag || ciphertext, hex encoded
SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100000
MIN_ENCRYPTED_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH

_HEX_PATTERN = re.compile(r"^[0-9a-f]+$", re.IGNORECASE)


def _derive_key(master_secret: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(master_secret.encode("utf-8"))


def encrypt(plaintext: str, master_secret: str) -> str:
    """Encrypt a secret with a key derived from the master secret.

    Every call uses a fresh salt and IV, so encrypting the same value twice
    yields different outputs.
    """
    if not plaintext or not isinstance(plaintext, str):
        raise EncryptionError("Invalid input: text must be a non-empty string")

    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(master_secret, salt)

    # AESGCM appends the tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    return (salt + iv + tag + ciphertext).hex()


def decrypt(encoded: str, master_secret: str) -> str:
    """Decrypt a value produced by encrypt()"""
    if not encoded or not isinstance(encoded, str):
        raise DecryptionError("Invalid input: encrypted data must be a non-empty string")

    try:
        data = bytes.fromhex(encoded)
    except ValueError as e:
        raise DecryptionError("Invalid encrypted data format") from e

    if len(data) < MIN_ENCRYPTED_LENGTH:
        raise DecryptionError("Invalid encrypted data format")

    salt = data[:SALT_LENGTH]
    iv = data[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
    tag = data[SALT_LENGTH + IV_LENGTH:MIN_ENCRYPTED_LENGTH]
    ciphertext = data[MIN_ENCRYPTED_LENGTH:]

    key = _derive_key(master_secret, salt)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise DecryptionError() from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError() from e


def looks_encrypted(value) -> bool:
    """True when the value has the shape of an encrypted secret"""
    if not value or not isinstance(value, str):
        return False
    return len(value) >= MIN_ENCRYPTED_LENGTH * 2 and bool(_HEX_PATTERN.match(value))


class SecretCipher:
    """Binds the process master secret to the encrypt/decrypt primitives"""

    def __init__(self, master_secret: str):
        if not master_secret or len(master_secret) < MIN_ENCRYPTION_SECRET_LENGTH:
            raise ConfigurationError(
                f"ENCRYPTION_SECRET must be at least {MIN_ENCRYPTION_SECRET_LENGTH} characters long"
            )
        self._master_secret = master_secret

    def encrypt(self, plaintext: str) -> str:
        return encrypt(plaintext, self._master_secret)

    def decrypt(self, encoded: str) -> str:
        return decrypt(encoded, self._master_secret)

    @staticmethod
    def looks_encrypted(value) -> bool:
        return looks_encrypted(value)

    def reveal(self, stored: str) -> str:
        """Read a stored secret that may predate encryption at rest"""
        if looks_encrypted(stored):
            return self.decrypt(stored)
        logger.warning("Stored secret is not encrypted, using legacy plaintext value")
        return stored


def generate_encryption_secret() -> str:
    """512 bits of randomness, base64 encoded"""
    return base64.b64encode(os.urandom(64)).decode("ascii")
