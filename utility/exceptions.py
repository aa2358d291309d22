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

class LTIError(Exception):
    """Base exception for the LTI trust and session layer"""
    status_code = 500
    public_message = "Internal Server Error"

    def __init__(self, message: str = None):
        super().__init__(message or self.public_message)


class ConfigurationError(LTIError):
    """Raised when process configuration is missing or invalid"""
    pass

class KeyNotConfigured(ConfigurationError):
    """Raised when the tool's signing key material is not configured"""
    public_message = "LTI key material is not configured"


class ProtocolError(LTIError):
    """Raised when a login or launch request breaks the LTI protocol"""
    status_code = 400
    public_message = "Invalid LTI request"

    def __init__(self, message: str = None):
        super().__init__(message)
        # Protocol failures are safe to echo back to the platform
        self.public_message = str(self)

class MissingParameter(ProtocolError):
    """Raised when a required login parameter is absent"""

    def __init__(self, missing: list):
        self.missing = list(missing)
        super().__init__(f"Missing required OIDC parameters: {', '.join(self.missing)}")

class UnknownIssuer(ProtocolError):
    """Raised when the login comes from an issuer we are not registered with"""

    def __init__(self, issuer: str):
        self.issuer = issuer
        super().__init__(f"Invalid issuer: {issuer}")

class MissingToken(ProtocolError):
    """Raised when the launch does not carry an id_token"""

    def __init__(self, message: str = "Missing id_token"):
        super().__init__(message)

class StateMismatch(ProtocolError):
    """Raised when the returned state does not match the state cookie"""

    def __init__(self, message: str = "Invalid state parameter"):
        super().__init__(message)

class NonceMismatch(ProtocolError):
    """Raised when the token nonce does not match the nonce cookie"""

    def __init__(self, message: str = "Invalid nonce"):
        super().__init__(message)

class UnauthorizedRole(ProtocolError):
    """Raised when the launching user is neither instructor nor learner"""
    status_code = 403

    def __init__(self, message: str = "Unauthorized role"):
        super().__init__(message)


class CryptographicError(LTIError):
    """Security relevant failure. Details are logged, callers get a generic message"""
    status_code = 401
    public_message = "Authentication failed"

class TokenVerificationError(CryptographicError):
    """Base class for id_token rejections"""
    pass

class InvalidSignature(TokenVerificationError):
    """Raised when the token is malformed or its signature does not verify"""
    pass

class UnknownKey(TokenVerificationError):
    """Raised when the signing key cannot be resolved from the platform key set"""
    pass

class IssuerMismatch(TokenVerificationError):
    """Raised when the token issuer is not the configured platform"""
    pass

class AudienceMismatch(TokenVerificationError):
    """Raised when the token audience does not include our client id"""
    pass

class Expired(TokenVerificationError):
    """Raised when the token is past its expiry"""
    pass

class MissingNonce(TokenVerificationError):
    """Raised when the token carries no nonce claim"""
    pass

class EncryptionError(CryptographicError):
    """Raised when a secret cannot be encrypted"""
    status_code = 500
    public_message = "Failed to encrypt data"

class DecryptionError(CryptographicError):
    """Raised when a stored secret cannot be decrypted"""
    status_code = 500
    public_message = "Failed to decrypt data - data may be corrupted or key may be wrong"


class StorageError(LTIError):
    """Raised when the storage layer fails. Safe for the caller to retry"""
    status_code = 500
