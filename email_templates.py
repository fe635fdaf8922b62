# email_templates.py
# Email templates for transactional emails

from typing import Dict

from config import settings


def _wrap_html(title: str, body_html: str) -> str:
    return f"""
    <html>
        <head>
            <style>
                body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background: linear-gradient(135deg, #f7971e 0%, #ffd200 100%); color: #222; padding: 20px; text-align: center; border-radius: 5px; }}
                .content {{ padding: 20px; background: #f9f9f9; }}
                .code {{ font-family: monospace; font-size: 20px; letter-spacing: 2px; background: #fff; padding: 10px; border: 1px dashed #f7971e; display: inline-block; }}
                .footer {{ text-align: center; font-size: 12px; color: #666; padding-top: 20px; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header">
                    <h1>{title}</h1>
                </div>
                <div class="content">
                    {body_html}
                    <p>With gratitude,<br>The {settings.SES_SENDER_NAME} Team</p>
                </div>
                <div class="footer">
                    <p>This is an automated message. Please do not reply.</p>
                </div>
            </div>
        </body>
    </html>
    """


def get_donation_receipt_template(donor_name: str, amount: str, donation_id: int, campaign_title: str = "", payment_id: str = "") -> Dict[str, str]:
    """Donation receipt"""
    towards = f" towards <strong>{campaign_title}</strong>" if campaign_title else ""
    reference = f"<p>Payment reference: {payment_id}</p>" if payment_id else ""
    html_body = _wrap_html("Thank you for your donation", f"""
                    <p>Dear {donor_name},</p>
                    <p>We have received your donation of <strong>&#8377;{amount}</strong>{towards}.</p>
                    <p>Donation ID: {donation_id}</p>
                    {reference}
    """)

    text_body = f"""
Thank you for your donation

Dear {donor_name},

We have received your donation of Rs. {amount}{' towards ' + campaign_title if campaign_title else ''}.
Donation ID: {donation_id}
{('Payment reference: ' + payment_id) if payment_id else ''}
    """

    return {
        'subject': f"Donation receipt #{donation_id}",
        'html': html_body,
        'text': text_body
    }


def get_coupon_issued_template(donor_name: str, coupon_code: str, amount: str, partner_name: str, expiry_date: str) -> Dict[str, str]:
    """Coupon minted for a partner-targeted donation"""
    html_body = _wrap_html("Your donation coupon", f"""
                    <p>Dear {donor_name},</p>
                    <p>Your donation of <strong>&#8377;{amount}</strong> has been converted into a coupon redeemable at <strong>{partner_name}</strong>.</p>
                    <p class="code">{coupon_code}</p>
                    <p>The coupon is valid until {expiry_date}.</p>
    """)

    text_body = f"""
Your donation coupon

Dear {donor_name},

Your donation of Rs. {amount} has been converted into a coupon redeemable at {partner_name}.
Coupon code: {coupon_code}
Valid until: {expiry_date}
    """

    return {
        'subject': f"Your coupon for {partner_name}",
        'html': html_body,
        'text': text_body
    }


def get_claim_status_template(partner_name: str, claim_id: int, coupon_code: str, amount: str, status: str, reason: str = "") -> Dict[str, str]:
    """Claim review outcome: approved, rejected or paid"""
    messages = {
        'approved': "Your claim has been approved and is queued for payout.",
        'rejected': "Your claim has been rejected.",
        'paid': "Your claim has been paid. The amount has been credited to your wallet.",
    }
    message = messages.get(status, f"Your claim status is now {status}.")
    reason_html = f"<p>Reason: {reason}</p>" if reason else ""

    html_body = _wrap_html(f"Claim {status}", f"""
                    <p>Dear {partner_name},</p>
                    <p>{message}</p>
                    <p>Claim ID: {claim_id}<br>Coupon: {coupon_code}<br>Amount: &#8377;{amount}</p>
                    {reason_html}
    """)

    text_body = f"""
Claim {status}

Dear {partner_name},

{message}
Claim ID: {claim_id}
Coupon: {coupon_code}
Amount: Rs. {amount}
{('Reason: ' + reason) if reason else ''}
    """

    return {
        'subject': f"Coupon claim #{claim_id} {status}",
        'html': html_body,
        'text': text_body
    }
