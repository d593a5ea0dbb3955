"""Device Token Mapping — turns a platform payload into core registration inputs.

Invariants:
    - Pure: no IO, raises InvalidInputError before the manager is touched
    - Web push endpoint with a comma, or non-base64url keys, is rejected
    - A non-empty web push endpoint becomes a compact JSON envelope; empty stays empty
"""

import json
from dataclasses import dataclass

from tokensync.core.domain_types import PlatformKind
from tokensync.core.errors import InvalidInputError
from tokensync.core.validate_input import is_base64url, validate_utf8_text
from tokensync.schemas.device_token import (
    ApplePushToken, ApplePushVoIPToken, BlackBerryPushToken, DeviceToken,
    FirebaseToken, MicrosoftPushToken, MicrosoftPushVoIPToken,
    SimplePushToken, TizenPushToken, UbuntuPushToken, WebPushToken,
    WindowsPushToken,
)


@dataclass(frozen=True)
class Registration:
    platform_kind: PlatformKind
    token: str
    is_sandboxed: bool = False
    encrypted: bool = False


def to_registration(device_token: DeviceToken) -> Registration:
    """Map a validated payload to its platform kind, token and flags."""
    match device_token:
        case ApplePushToken(device_token=token, is_app_sandbox=sandbox):
            return Registration(PlatformKind.APPLE_PUSH, token, is_sandboxed=sandbox)
        case ApplePushVoIPToken(
            device_token=token, is_app_sandbox=sandbox, encrypt=encrypt,
        ):
            return Registration(
                PlatformKind.APPLE_PUSH_VOIP, token,
                is_sandboxed=sandbox, encrypted=encrypt,
            )
        case FirebaseToken(token=token, encrypt=encrypt):
            return Registration(PlatformKind.FIREBASE, token, encrypted=encrypt)
        case MicrosoftPushToken(channel_uri=token):
            return Registration(PlatformKind.MICROSOFT_PUSH, token)
        case MicrosoftPushVoIPToken(channel_uri=token):
            return Registration(PlatformKind.MICROSOFT_PUSH_VOIP, token)
        case SimplePushToken(endpoint=token):
            return Registration(PlatformKind.SIMPLE_PUSH, token)
        case UbuntuPushToken(token=token):
            return Registration(PlatformKind.UBUNTU_PUSH, token)
        case BlackBerryPushToken(token=token):
            return Registration(PlatformKind.BLACKBERRY_PUSH, token)
        case WindowsPushToken(access_token=token):
            return Registration(PlatformKind.WINDOWS_PUSH, token)
        case WebPushToken():
            return Registration(PlatformKind.WEB_PUSH, _web_push_envelope(device_token))
        case TizenPushToken(reg_id=token):
            return Registration(PlatformKind.TIZEN_PUSH, token)
    raise InvalidInputError(
        f"Unsupported device token type: {type(device_token).__name__}",
        "device_token",
    )


def _web_push_envelope(device_token: WebPushToken) -> str:
    if "," in device_token.endpoint:
        raise InvalidInputError("Illegal endpoint value", "endpoint")
    if not is_base64url(device_token.p256dh_base64url):
        raise InvalidInputError(
            "Public key must be base64url-encoded", "p256dh_base64url",
        )
    if not is_base64url(device_token.auth_base64url):
        raise InvalidInputError(
            "Authentication secret must be base64url-encoded", "auth_base64url",
        )
    endpoint = validate_utf8_text(device_token.endpoint, "endpoint", "Endpoint")

    if not endpoint:
        return ""
    return json.dumps(
        {
            "endpoint": endpoint,
            "keys": {
                "p256dh": device_token.p256dh_base64url,
                "auth": device_token.auth_base64url,
            },
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )
