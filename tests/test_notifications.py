from config import settings
from email_templates import get_claim_status_template, get_coupon_issued_template
from ses_service import SESEmailService


class FakeSES:
    def __init__(self):
        self.sent = []

    def send_email(self, **message):
        self.sent.append(message)
        return {"MessageId": f"msg-{len(self.sent)}"}


def test_build_message():
    service = SESEmailService()
    message = service.build_message("a@example.com", "Hello", "<p>Hi</p>", text="Hi", tags={"type": "test"})

    assert message["Destination"] == {"ToAddresses": ["a@example.com"]}
    assert message["Message"]["Subject"]["Data"] == "Hello"
    assert message["Message"]["Body"]["Text"]["Data"] == "Hi"
    assert message["Tags"] == [{"Name": "type", "Value": "test"}]

    html_only = service.build_message("a@example.com", "Hello", "<p>Hi</p>")
    assert "Text" not in html_only["Message"]["Body"]
    assert "Tags" not in html_only


async def test_send_is_skipped_without_credentials():
    service = SESEmailService()
    service._client = FakeSES()

    result = await service.send_email("a@example.com", "Hello", "<p>Hi</p>")

    assert result["skipped"] is True
    assert service._client.sent == []


async def test_send_template_with_credentials(monkeypatch):
    monkeypatch.setattr(settings, "AWS_ACCESS_KEY_ID", "AKIATEST")
    monkeypatch.setattr(settings, "AWS_SECRET_ACCESS_KEY", "secret")
    service = SESEmailService()
    service._client = FakeSES()
    template = get_coupon_issued_template("Asha", "COUPON-1234-5678-9ABC", "500.00", "Sunrise Clinic", "01 Jan 2030")

    result = await service.send_template("asha@example.com", template, tags={"type": "coupon_issued"})

    assert result == {"success": True, "message_id": "msg-1", "recipient": "asha@example.com"}
    sent = service._client.sent[0]
    assert sent["Message"]["Subject"]["Data"] == "Your coupon for Sunrise Clinic"
    assert "COUPON-1234-5678-9ABC" in sent["Message"]["Body"]["Html"]["Data"]


def test_claim_status_template_mentions_reason():
    template = get_claim_status_template("Sunrise Clinic", 7, "COUPON-1234-5678-9ABC", "500.00", "rejected", reason="Duplicate")
    assert template["subject"] == "Coupon claim #7 rejected"
    assert "Reason: Duplicate" in template["text"]
    assert "Reason" not in get_claim_status_template("Sunrise Clinic", 7, "C", "1", "approved")["text"]
