from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType
from config import EMAIL_FROM, EMAIL_FROM_NAME, EMAIL_PORT, EMAIL_SERVER


class EmailService:
    def __init__(self):
        self.config = ConnectionConfig(
            MAIL_USERNAME="",
            MAIL_PASSWORD="",
            MAIL_FROM=EMAIL_FROM,
            MAIL_PORT=EMAIL_PORT,
            MAIL_SERVER=EMAIL_SERVER,
            MAIL_FROM_NAME=EMAIL_FROM_NAME,
            MAIL_STARTTLS=False,
            MAIL_SSL_TLS=False,
            USE_CREDENTIALS=False,
            VALIDATE_CERTS=False,
        )
        self.mailer = FastMail(self.config)

    async def send_email(self, to_email: str, subject: str, body: str):
        """Send a plain text email"""
        message = MessageSchema(
            subject=subject,
            recipients=[to_email],
            body=body,
            subtype=MessageType.plain,
        )
        await self.mailer.send_message(message)
