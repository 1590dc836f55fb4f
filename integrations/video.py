import time

from agora_token_builder import RtcTokenBuilder
from flask import current_app

from services.errors import ProviderFailure

# RtcTokenBuilder role constants
ROLE_PUBLISHER = 1
ROLE_SUBSCRIBER = 2

_ROLES = {"publisher": ROLE_PUBLISHER, "subscriber": ROLE_SUBSCRIBER}


def generate_channel_name(booking_id) -> str:
    # ms timestamp makes the name unique per confirmation
    return f"call_{booking_id}_{int(time.time() * 1000)}"


class AgoraProvisioner:
    def __init__(self, app_id=None, app_certificate=None, token_ttl_seconds: int = 3600):
        self.app_id = app_id
        self.app_certificate = app_certificate
        self.token_ttl_seconds = token_ttl_seconds

    def issue_token(self, channel_name: str, party_id: int, role: str = "publisher") -> str:
        if not self.app_id or not self.app_certificate:
            raise ProviderFailure("Video provider not configured (AGORA_APP_ID / AGORA_APP_CERTIFICATE)")
        if role not in _ROLES:
            raise ValueError(f"Unknown video role: {role}")

        expires_at = int(time.time()) + self.token_ttl_seconds
        try:
            return RtcTokenBuilder.buildTokenWithUid(
                self.app_id,
                self.app_certificate,
                channel_name,
                party_id,
                _ROLES[role],
                expires_at,
            )
        except Exception as exc:
            current_app.logger.warning("Agora token build failed for %s: %s", channel_name, exc)
            raise ProviderFailure("Video provider error while issuing call token") from exc


def get_video_provisioner():
    return current_app.extensions["video_provisioner"]
