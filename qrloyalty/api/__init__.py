"""
HTTP blueprints for the loyalty service.
"""
from .scan import scan_bp
from .points import points_bp
from .rewards import rewards_bp
from .loyalty import loyalty_bp

__all__ = ['scan_bp', 'points_bp', 'rewards_bp', 'loyalty_bp']
