from pulse_omega.api.app import create_app

__all__ = ['create_app']
