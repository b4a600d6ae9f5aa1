from .db import db
from .user import User
from .audit_log import AuditLog
from .group import Group, GroupMembership
from .chapter import Chapter
from .homework import Homework
from .report import Report
from .school_class import SchoolClass, Enrollment, TeacherClass
from .verification_token import VerificationToken
from .password_reset_token import PasswordResetToken
from .invite import Invite
