"""Email notifications for request lifecycle changes."""
from flask import current_app
from flask_mail import Message as MailMessage

from foodshare import mail


def _send_email(to_email, subject, body):
    if not to_email:
        return
    try:
        msg = MailMessage(subject=subject, recipients=[to_email], body=body)
        mail.send(msg)
    except Exception as e:
        current_app.logger.warning('Email to %s failed: %s', to_email, e)


def notify_new_request(food_request):
    donor = food_request.donor
    body = (
        f'Hello {donor.name},\n\n'
        f'{food_request.receiver.name} requested {food_request.requested_amount} '
        f'{food_request.requested_unit} of "{food_request.food.title}".\n\n'
        '- FoodShare'
    )
    _send_email(donor.email, 'FoodShare: new request for your listing', body)


_STATUS_SUBJECTS = {
    'accepted': 'FoodShare: your request was accepted',
    'rejected': 'FoodShare: your request was declined',
    'cancelled': 'FoodShare: a request was cancelled',
    'completed': 'FoodShare: pickup completed',
}


def notify_status_change(food_request, actor):
    """Tell the party that did not act about the new request status"""
    recipient = food_request.receiver if actor.id == food_request.donor_id else food_request.donor
    subject = _STATUS_SUBJECTS.get(food_request.status)
    if subject is None:
        return
    note = food_request.response_message or food_request.cancellation_reason or ''
    body = (
        f'Hello {recipient.name},\n\n'
        f'The request for "{food_request.food.title}" is now {food_request.status}.\n'
        + (f'\nMessage: {note}\n' if note else '')
        + '\n- FoodShare'
    )
    _send_email(recipient.email, subject, body)
