"""HTTP gateway to the habit service"""

from .gateway import GatewayClient, attach_credentials, clear_on_authorization_failure

__all__ = ["GatewayClient", "attach_credentials", "clear_on_authorization_failure"]
