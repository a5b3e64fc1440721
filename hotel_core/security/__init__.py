# Security module
from hotel_core.security.auth import Operator, create_access_token, get_current_operator

__all__ = ['Operator', 'create_access_token', 'get_current_operator']
