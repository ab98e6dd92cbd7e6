import httpx
import structlog

from wonderstars.core.config import settings

logger = structlog.get_logger()


class SmsSendResult:
    def __init__(self, success: bool, error: str = None):
        self.success = success
        self.error = error


class IsmsClient:
    """iSMS 短信网关（表单POST，返回文本里带 2000 或 success 视为成功）"""

    def __init__(self):
        self.url = settings.isms_url
        self.username = settings.isms_username
        self.password = settings.isms_password
        self.sender_id = settings.isms_sender_id
        self.timeout = settings.isms_timeout

    async def send_sms(self, phone: str, message: str) -> SmsSendResult:
        form = {
            "un": self.username or "",
            "pwd": self.password or "",
            "dstno": phone,
            "msg": message,
            "type": "1",
            "agreedterm": "YES",
            "sendid": self.sender_id,
        }

        logger.info("发送短信", phone=phone, sender_id=self.sender_id)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(self.url, data=form)
        except httpx.HTTPError as e:
            logger.error("短信网关请求失败", phone=phone, error=str(e))
            return SmsSendResult(False, f"SMS API error: {e}")

        text = r.text
        logger.info("短信网关响应", status_code=r.status_code, body=text)

        if "2000" in text or "success" in text:
            return SmsSendResult(True)

        logger.error("短信发送失败", phone=phone, body=text)
        return SmsSendResult(False, f"SMS send failed: {text}")
