from .health import health_bp
from .auth import auth_bp
from .users import users_bp
from .chapters import chapters_bp
from .homework import homework_bp
from .reports import reports_bp
from .groups import groups_bp
from .dashboard import dashboard_bp
from .admin import admin_bp
from .upload import upload_bp
