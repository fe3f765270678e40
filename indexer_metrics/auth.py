import base64
import binascii
import hmac
import logging

from indexer_metrics.exceptions import (
    AuthDecodeError,
    AuthenticationError,
    AuthorizationError,
)
from indexer_metrics.schemas import Capability, ClientsPolicy

logger = logging.getLogger(__name__)

BASIC_SCHEME = 'basic'


def basic_auth_header_value(client_id: str, secret: str) -> str:
    token = base64.b64encode(f'{client_id}:{secret}'.encode()).decode('ascii')
    return f'Basic {token}'


def decode_basic_auth(authorization: str | None) -> tuple[str, str]:
    if not authorization:
        raise AuthDecodeError('Missing authorization')
    scheme, _, token = authorization.strip().partition(' ')
    if scheme.lower() != BASIC_SCHEME or not token.strip():
        raise AuthDecodeError('Expected Basic authorization')
    try:
        decoded = base64.b64decode(token.strip(), validate=True).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError) as e:
        raise AuthDecodeError('Malformed Basic credentials') from e
    client_id, sep, secret = decoded.partition(':')
    if not sep or not client_id:
        raise AuthDecodeError('Malformed Basic credentials')
    return client_id, secret


class AuthGate:
    def __init__(self, clients: ClientsPolicy) -> None:
        self.clients = dict(clients)

    def authenticate(self, authorization: str | None) -> str:
        client_id, secret = decode_basic_auth(authorization)
        client = self.clients.get(client_id)
        # constant-time over every password
        matched = False
        for password in client.passwords if client else ():
            matched |= hmac.compare_digest(password.encode(), secret.encode())
        if client is None or not matched:
            logger.warning('Authentication failed', extra={'client_id': client_id})
            raise AuthenticationError('Invalid credentials')
        return client_id

    def authorize(self, authorization: str | None, capability: Capability) -> str:
        client_id = self.authenticate(authorization)
        if capability not in self.clients[client_id].capabilities:
            logger.warning(
                'Authorization failed',
                extra={'client_id': client_id, 'capability': capability.value},
            )
            raise AuthorizationError(client_id, capability.value)
        return client_id
