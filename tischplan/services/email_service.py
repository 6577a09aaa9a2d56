"""
Email-Service für Benachrichtigungen an wartende Gäste.
"""
from datetime import datetime
import logging

from fastapi_mail import FastMail, MessageSchema, MessageType, ConnectionConfig

from tischplan.config import settings
from tischplan.utils.timeutils import utc_to_local

logger = logging.getLogger("tischplan.services.email_service")


# ============ KONFIGURATION ============

def smtp_configured() -> bool:
    return bool(settings.smtp_user and settings.smtp_password and settings.smtp_from)


def get_connection_config() -> ConnectionConfig:
    """Erst beim Versand bauen, ohne SMTP-Daten ist ConnectionConfig ungültig."""
    return ConnectionConfig(
        MAIL_USERNAME=settings.smtp_user,
        MAIL_PASSWORD=settings.smtp_password,
        MAIL_FROM=settings.smtp_from,
        MAIL_PORT=settings.smtp_port,
        MAIL_SERVER=settings.smtp_host,
        MAIL_STARTTLS=True,
        MAIL_SSL_TLS=False,
        USE_CREDENTIALS=True,
        VALIDATE_CERTS=True
    )


# ============ HILFSFUNKTIONEN ============

def format_time(dt: datetime | None) -> str:
    """Uhrzeit in Ortszeit, ohne Angabe 'sofort'."""
    if dt is None:
        return "sofort"
    return utc_to_local(dt).strftime("%H:%M")


# ============ EMAIL VERSAND ============

async def send_waiting_list_email(
    to_email: str,
    customer_name: str,
    people_count: int,
    available_at: datetime | None = None,
) -> dict:
    """
    Teilt einem wartenden Gast mit, dass ein Tisch bereit ist.

    Returns:
        Dict mit {"success": bool, "error": str|None}
    """
    if not smtp_configured():
        logger.info(f"SMTP nicht konfiguriert, keine Email an {to_email}")
        return {"success": False, "error": "SMTP nicht konfiguriert"}

    body = f"""Hallo {customer_name},

Ihr Tisch für {people_count} Personen ist ab {format_time(available_at)} bereit.
Bitte melden Sie sich beim Service.

Mit freundlichen Grüßen
{settings.company_name}

---
Tel: {settings.company_phone}
"""

    message = MessageSchema(
        subject=f"{settings.company_name}: Ihr Tisch ist bereit",
        recipients=[to_email],
        body=body,
        subtype=MessageType.plain,
    )

    try:
        fm = FastMail(get_connection_config())
        await fm.send_message(message)
        logger.info(f"Warteliste-Email an {to_email} gesendet")
        return {"success": True, "error": None}
    except Exception as e:
        logger.error(f"EMAIL FEHLER: {e}")
        return {"success": False, "error": str(e)}
