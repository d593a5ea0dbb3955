"""Device Token Schemas — platform-specific payloads accepted at the API boundary.

Invariants:
    - DeviceToken is a discriminated union on `type` — one variant per PlatformKind
    - Only Apple variants carry is_app_sandbox; only Firebase and Apple VoIP carry encrypt
    - Empty token strings are legal: they request unregistration

Design Decisions:
    - Literal discriminator over a str enum: Pydantic selects the variant natively
    - Field-level limits only; semantic checks (UTF-8, base64url) live in core/validate_input.py
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from tokensync.core.domain_types import MAX_OTHER_ACCOUNT_IDS


class ApplePushToken(BaseModel):
    type: Literal["apple_push"] = "apple_push"
    device_token: str = ""
    is_app_sandbox: bool = False


class ApplePushVoIPToken(BaseModel):
    type: Literal["apple_push_voip"] = "apple_push_voip"
    device_token: str = ""
    is_app_sandbox: bool = False
    encrypt: bool = False


class FirebaseToken(BaseModel):
    type: Literal["firebase"] = "firebase"
    token: str = ""
    encrypt: bool = False


class MicrosoftPushToken(BaseModel):
    type: Literal["microsoft_push"] = "microsoft_push"
    channel_uri: str = ""


class MicrosoftPushVoIPToken(BaseModel):
    type: Literal["microsoft_push_voip"] = "microsoft_push_voip"
    channel_uri: str = ""


class SimplePushToken(BaseModel):
    type: Literal["simple_push"] = "simple_push"
    endpoint: str = ""


class UbuntuPushToken(BaseModel):
    type: Literal["ubuntu_push"] = "ubuntu_push"
    token: str = ""


class BlackBerryPushToken(BaseModel):
    type: Literal["blackberry_push"] = "blackberry_push"
    token: str = ""


class WindowsPushToken(BaseModel):
    type: Literal["windows_push"] = "windows_push"
    access_token: str = ""


class WebPushToken(BaseModel):
    type: Literal["web_push"] = "web_push"
    endpoint: str = ""
    p256dh_base64url: str = ""
    auth_base64url: str = ""


class TizenPushToken(BaseModel):
    type: Literal["tizen_push"] = "tizen_push"
    reg_id: str = ""


DeviceToken = Annotated[
    Union[
        ApplePushToken, ApplePushVoIPToken, FirebaseToken,
        MicrosoftPushToken, MicrosoftPushVoIPToken, SimplePushToken,
        UbuntuPushToken, BlackBerryPushToken, WindowsPushToken,
        WebPushToken, TizenPushToken,
    ],
    Field(discriminator="type"),
]


class RegisterDeviceBody(BaseModel):
    """POST /device-tokens body."""
    device_token: DeviceToken
    # Checked again in the core; the schema limit keeps oversized bodies out early
    other_account_ids: list[int] = Field(
        default_factory=list, max_length=MAX_OTHER_ACCOUNT_IDS,
    )


class PushReceiverIdResponse(BaseModel):
    push_receiver_id: int


class TokenRecordView(BaseModel):
    """Public view of a token record — never includes key material."""
    platform_kind: str
    state: str
    token: str
    is_sandboxed: bool
    encrypted: bool
    other_account_ids: list[int]


class EncryptionKeyEntry(BaseModel):
    receiver_id: int
    key_base64: str
