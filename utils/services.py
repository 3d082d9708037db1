"""
Per-application service container.

Built once by create_app and kept in app.extensions; request handlers use
get_services() instead of module-level clients.
"""

from flask import current_app
from utils.ai_assistant import AIAssistant
from utils.email_service import EmailService
from utils.live_channel import LiveChannel
from utils.payment_service import PaymentGateway
from utils.profile_enhancer import ProfileEnhancer

EXTENSION_KEY = 'helpwise'


class Services:
    def __init__(self, assistant, payments, mailer, live, profiles):
        self.assistant = assistant
        self.payments = payments
        self.mailer = mailer
        self.live = live
        self.profiles = profiles

    @classmethod
    def from_config(cls, config):
        return cls(
            assistant=AIAssistant.from_config(config),
            payments=PaymentGateway.from_config(config),
            mailer=EmailService.from_config(config),
            live=LiveChannel(),
            profiles=ProfileEnhancer(),
        )


def init_services(app, services=None):
    services = services or Services.from_config(app.config)
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services():
    return current_app.extensions[EXTENSION_KEY]
