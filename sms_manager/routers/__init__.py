from sms_manager.routers import sms

__all__ = ['sms']
