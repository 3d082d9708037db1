"""
Account operations: registration, e-mail verification and profile maintenance
"""

import logging
from datetime import datetime
from models import db, User, TypeOfHelp
from utils.error_handling import ValidationError

logger = logging.getLogger(__name__)


class UserService:
    """Service class for user accounts"""

    @staticmethod
    def find_by_email(email):
        return User.query.filter(db.func.lower(User.email) == email.strip().lower()).first()

    @staticmethod
    def resolve_expertise(type_ids, default_first=False):
        """Load categories by id; every id must resolve"""
        if not type_ids:
            if default_first:
                first = TypeOfHelp.query.order_by(TypeOfHelp.id.asc()).first()
                return [first] if first else []
            return []
        wanted = set(type_ids)
        types = TypeOfHelp.query.filter(TypeOfHelp.id.in_(wanted)).all()
        if len(types) != len(wanted):
            raise ValidationError('Some expertise IDs are invalid',
                                  errors={'expertise': ['Some expertise IDs are invalid']})
        return types

    @staticmethod
    def register(mailer, first_name, last_name, email, password, expertise_ids=None):
        if UserService.find_by_email(email):
            raise ValidationError('User with this email already exists')

        user = User(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email.strip().lower(),
            is_verified=False,
            credibility_points=0,
        )
        user.set_password(password)
        user.expertise = UserService.resolve_expertise(expertise_ids, default_first=True)
        mailer.issue_otp(user)

        db.session.add(user)
        db.session.commit()
        logger.info(f"User {user.id} registered, awaiting e-mail verification")

        mailer.send_otp_email(user)
        return user

    @staticmethod
    def authenticate(email, password):
        """The user for valid credentials, else None"""
        user = UserService.find_by_email(email)
        if not user or not user.check_password(password):
            return None
        return user

    @staticmethod
    def verify_otp(email, otp, now=None):
        user = UserService.find_by_email(email)
        if not user:
            raise ValidationError('User not found')
        if user.is_verified:
            raise ValidationError('User already verified')
        if not user.email_otp or not user.otp_expires_at:
            raise ValidationError('No OTP found for this user')
        if (now or datetime.utcnow()) > user.otp_expires_at:
            raise ValidationError('OTP has expired')
        if user.email_otp != otp.strip():
            raise ValidationError('Invalid OTP')

        user.is_verified = True
        user.email_otp = None
        user.otp_expires_at = None
        db.session.commit()
        logger.info(f"User {user.id} verified their e-mail")
        return user

    @staticmethod
    def resend_otp(mailer, email):
        user = UserService.find_by_email(email)
        if not user:
            raise ValidationError('User not found')
        if user.is_verified:
            raise ValidationError('User already verified')

        mailer.issue_otp(user)
        db.session.commit()
        mailer.send_otp_email(user)
        return user

    @staticmethod
    def update_profile(user, first_name, last_name, email, expertise_ids, password=None,
                       bio=None, location=None, website=None):
        email = email.strip().lower()
        other = UserService.find_by_email(email)
        if other and other.id != user.id:
            raise ValidationError('User with this email already exists')

        user.first_name = first_name.strip()
        user.last_name = last_name.strip()
        user.email = email
        user.expertise = UserService.resolve_expertise(expertise_ids)
        if password:
            user.set_password(password)
        if bio is not None:
            user.bio = bio.strip()
        if location is not None:
            user.location = location.strip()
        if website is not None:
            user.website = website.strip()

        db.session.commit()
        return user

    @staticmethod
    def update_expertise(user, expertise_ids):
        user.expertise = UserService.resolve_expertise(expertise_ids)
        db.session.commit()
        return user

    @staticmethod
    def enhance_profile(enhancer, user, github_url=None, twitter_username=None):
        """Store social handles and a GitHub summary; returns True when GitHub data was fetched"""
        if twitter_username:
            user.twitter_username = twitter_username.strip().lstrip('@')

        fetched = False
        if github_url:
            user.github_url = github_url.strip()
            summary = enhancer.fetch_github(user.github_url)
            if summary:
                user.enhanced_profile = summary
                fetched = True
                if not user.profile_picture and summary.get('avatar_url'):
                    user.profile_picture = summary['avatar_url']
                    user.profile_picture_source = 'github'

        db.session.commit()
        return fetched
