"""Provider interfaces for webhookctl."""
from __future__ import annotations

from .apt import AptError, AptProvider
from .certbot import CertbotError, CertbotProvider
from .nginx import NginxError, NginxProvider, NginxRenderResult
from .pm2 import Pm2Error, Pm2Process, Pm2Provider
from .systemd import SystemdError, SystemdProvider
from .ufw import FirewallError, FirewallProvider

__all__ = [
    "AptError",
    "AptProvider",
    "CertbotError",
    "CertbotProvider",
    "FirewallError",
    "FirewallProvider",
    "NginxError",
    "NginxProvider",
    "NginxRenderResult",
    "Pm2Error",
    "Pm2Process",
    "Pm2Provider",
    "SystemdError",
    "SystemdProvider",
]
