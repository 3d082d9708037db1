"""
Email service for sending one-time verification codes
"""
import logging
import secrets
from datetime import datetime, timedelta
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()


def generate_otp():
    """Six random digits"""
    return f"{secrets.randbelow(1000000):06d}"


class EmailService:
    def __init__(self, mail_extension=None, mail_server=None, from_name='HelpWise', otp_ttl_minutes=15):
        self.mail = mail_extension or mail
        self.mail_server = mail_server
        self.from_name = from_name
        self.otp_ttl_minutes = otp_ttl_minutes

    @classmethod
    def from_config(cls, config):
        return cls(mail, config.get('MAIL_SERVER'), otp_ttl_minutes=int(config.get('OTP_TTL_MINUTES', 15)))

    def send_email(self, to_email, subject, html_content, text_content=None):
        """Send email through Flask-Mail; failures are logged and reported as False"""
        if not self.mail_server:
            logger.info(f"MAIL_SERVER not configured; email '{subject}' to {to_email} not sent")
            return False
        try:
            msg = Message(subject=subject, recipients=[to_email], html=html_content, body=text_content)
            self.mail.send(msg)
            logger.info(f"Email sent successfully to {to_email}")
            return True
        except Exception as e:
            logger.error(f"Error sending email to {to_email}: {str(e)}")
            return False

    def issue_otp(self, user):
        """Give the user a fresh code; the caller commits"""
        user.email_otp = generate_otp()
        user.otp_expires_at = datetime.utcnow() + timedelta(minutes=self.otp_ttl_minutes)
        return user.email_otp

    def send_otp_email(self, user):
        otp = user.email_otp
        if not self.mail_server:
            # Development mode: the code only goes to the server log
            logger.info(f"OTP for {user.email}: {otp}")
            return False

        subject = f"Verify your {self.from_name} account"
        html_content = f"""
        <div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>Hello {user.first_name}!</h2>
            <p>Your verification code is:</p>
            <p style="font-size: 28px; font-weight: bold; letter-spacing: 4px;">{otp}</p>
            <p>This code expires in {self.otp_ttl_minutes} minutes.</p>
            <p>If you didn't create an account with {self.from_name}, please ignore this email.</p>
        </div>
        """
        text_content = (f"Hello {user.first_name},\n\nYour verification code is {otp}.\n"
                        f"It expires in {self.otp_ttl_minutes} minutes.\n\nThe {self.from_name} Team")
        return self.send_email(user.email, subject, html_content, text_content)
