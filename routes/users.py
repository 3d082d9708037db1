from flask import Blueprint, jsonify, session
from flask_login import login_user, logout_user, login_required, current_user
from forms import (load_form, RegisterForm, LoginForm, ProfileForm, ExpertiseForm, VerifyOtpForm,
                   ResendOtpForm, EnhanceProfileForm)
from utils.bid_service import BidService
from utils.error_handling import ValidationError
from utils.services import get_services
from utils.user_service import UserService

users_bp = Blueprint('users', __name__)


def _start_session(user):
    session.permanent = True
    login_user(user)


@users_bp.route('/register', methods=['POST'])
def register():
    form = load_form(RegisterForm)
    user = UserService.register(
        get_services().mailer,
        form.first_name.data,
        form.last_name.data,
        form.email.data,
        form.password.data,
        form.expertise.data,
    )
    return jsonify({
        'success': True,
        'message': 'OTP sent to email for verification',
        'email': user.email
    }), 201


@users_bp.route('/login', methods=['POST'])
def login():
    form = load_form(LoginForm)
    user = UserService.authenticate(form.email.data, form.password.data)
    if not user:
        raise ValidationError('Invalid Credentials')

    _start_session(user)
    return jsonify({'success': True, 'message': 'Logged in successfully', 'user': user.to_dict()})


@users_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    session.clear()
    return jsonify({'success': True, 'message': 'Logged out successfully'})


@users_bp.route('/me')
@login_required
def me():
    return jsonify({'success': True, 'user': current_user.to_dict()})


@users_bp.route('/me', methods=['PUT'])
@login_required
def update_me():
    form = load_form(ProfileForm)
    user = UserService.update_profile(
        current_user,
        form.first_name.data,
        form.last_name.data,
        form.email.data,
        form.expertise.data,
        password=form.password.data,
        bio=form.bio.data,
        location=form.location.data,
        website=form.website.data,
    )
    return jsonify({'success': True, 'user': user.to_dict()})


@users_bp.route('/update-expertise', methods=['PUT'])
@login_required
def update_expertise():
    form = load_form(ExpertiseForm)
    user = UserService.update_expertise(current_user, form.expertise.data)
    return jsonify({'success': True, 'user': user.to_dict()})


@users_bp.route('/me/bids')
@login_required
def my_bids():
    bids = BidService.list_for_bidder(current_user)
    return jsonify({'success': True, 'bids': [bid.to_dict(include_request=True) for bid in bids]})


@users_bp.route('/verify-otp', methods=['POST'])
def verify_otp():
    form = load_form(VerifyOtpForm)
    user = UserService.verify_otp(form.email.data, form.otp.data)
    _start_session(user)
    return jsonify({'success': True, 'message': 'Email verified successfully', 'user': user.to_dict()})


@users_bp.route('/resend-otp', methods=['POST'])
def resend_otp():
    form = load_form(ResendOtpForm)
    UserService.resend_otp(get_services().mailer, form.email.data)
    return jsonify({'success': True, 'message': 'OTP resent to email'})


@users_bp.route('/enhance-profile', methods=['POST'])
@login_required
def enhance_profile():
    form = load_form(EnhanceProfileForm)
    fetched = UserService.enhance_profile(
        get_services().profiles,
        current_user,
        github_url=form.github_url.data,
        twitter_username=form.twitter_username.data,
    )
    message = 'Profile enhanced with GitHub data' if fetched else 'Profile links saved'
    return jsonify({'success': True, 'message': message, 'user': current_user.to_dict()})
