"""Device Tokens — register/unregister push tokens and inspect their sync state.

Invariants:
    - POST validates the platform payload before the manager is touched
    - POST returns only after the push server settled the request (or it was superseded)
    - GET never exposes key material; encryption keys have their own endpoint

Design Decisions:
    - Manager lives on app.state: created in lifespan, shared by every request
    - Routes only translate HTTP ↔ manager calls; all state logic stays in services
"""

import base64
import logging

from fastapi import APIRouter, Depends, Request

from tokensync.schemas.device_token import (
    EncryptionKeyEntry, PushReceiverIdResponse, RegisterDeviceBody,
    TokenRecordView,
)
from tokensync.services.device_token_manager import DeviceTokenManager
from tokensync.services.device_token_mapping import to_registration

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/device-tokens", tags=["device-tokens"])


def get_manager(request: Request) -> DeviceTokenManager:
    return request.app.state.device_token_manager


@router.post("", response_model=PushReceiverIdResponse)
async def register_device(
    body: RegisterDeviceBody,
    manager: DeviceTokenManager = Depends(get_manager),
):
    """Register (non-empty token) or unregister (empty token) a device."""
    registration = to_registration(body.device_token)
    receiver_id = await manager.register_device(
        registration.platform_kind,
        registration.token,
        body.other_account_ids,
        is_sandboxed=registration.is_sandboxed,
        encrypted=registration.encrypted,
    )
    return PushReceiverIdResponse(push_receiver_id=receiver_id)


@router.get("", response_model=list[TokenRecordView])
async def list_device_tokens(
    manager: DeviceTokenManager = Depends(get_manager),
):
    return [
        TokenRecordView(
            platform_kind=kind.name.lower(),
            state=record.state.value,
            token=record.token,
            is_sandboxed=record.is_sandboxed,
            encrypted=record.encrypted,
            other_account_ids=record.other_account_ids,
        )
        for kind, record in manager.records()
        if record.token
    ]


@router.get("/encryption-keys", response_model=list[EncryptionKeyEntry])
async def list_encryption_keys(
    manager: DeviceTokenManager = Depends(get_manager),
):
    """Receiver ids and keys for decrypting incoming pushes."""
    return [
        EncryptionKeyEntry(
            receiver_id=receiver_id,
            key_base64=base64.b64encode(key_bytes).decode("ascii"),
        )
        for receiver_id, key_bytes in manager.get_encryption_keys()
    ]
