"""
Email content for store lifecycle notifications.
"""

from __future__ import annotations

from html import escape

from storefinder.domain.models import NotificationMessage, Store, StoreStatus

_STATUS_COLORS = {
    StoreStatus.APPROVED: "#4CAF50",
    StoreStatus.REJECTED: "#F44336",
    StoreStatus.PENDING: "#FF9800",
}


def status_subject(status: StoreStatus) -> str:
    if status == StoreStatus.APPROVED:
        return "Store Registration Approved!"
    return "Store Registration Status Update"


def _status_details(status: StoreStatus, admin_email: str | None) -> str:
    if status == StoreStatus.APPROVED:
        return (
            "<div><p>Congratulations! You can now:</p><ul>"
            "<li>Access your store dashboard</li>"
            "<li>Add and manage your products</li>"
            "<li>Update your store information</li>"
            "</ul><p>Log in to your account to start managing your store!</p></div>"
        )
    contact = (
        f" please contact our administrator at {escape(admin_email)}" if admin_email else " please contact support"
    )
    return (
        "<div><p>Unfortunately, your store registration has been rejected. This could be due to:</p><ul>"
        "<li>Incomplete or incorrect information</li>"
        "<li>Unable to verify business credentials</li>"
        "<li>Violation of platform policies</li>"
        f"</ul><p>For more information or to appeal this decision,{contact}.</p></div>"
    )


def status_change_message(
    *, recipient: str, store_name: str, status: StoreStatus, admin_email: str | None = None
) -> NotificationMessage:
    """Email telling a store owner that an admin changed their store's status."""
    color = _STATUS_COLORS[status]
    body = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h2 style="color: {color}">Store Registration {status.value.capitalize()}</h2>'
        "<p>Dear Store Owner,</p>"
        f"<p>We are writing to inform you that your store \"<strong>{escape(store_name)}</strong>\" "
        f"has been <strong>{status.value}</strong> by the administrator.</p>"
        f"{_status_details(status, admin_email)}"
        "<p>Best regards,<br>The Admin Team</p></div>"
    )
    return NotificationMessage(to=recipient, subject=status_subject(status), body=body)


def new_store_message(*, recipient: str, store: Store, owner_email: str | None) -> NotificationMessage:
    """Email telling the admin that a store is waiting for review."""
    body = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        "<h2>New Store Awaiting Approval</h2>"
        f"<p><strong>Store:</strong> {escape(store.name)}</p>"
        f"<p><strong>Address:</strong> {escape(store.address)}</p>"
        f"<p><strong>Owner:</strong> {escape(owner_email or 'Unknown')}</p>"
        "<p>Review it from the admin dashboard.</p></div>"
    )
    return NotificationMessage(to=recipient, subject=f"New store pending approval: {store.name}", body=body)
