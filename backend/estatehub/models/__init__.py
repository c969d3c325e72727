from estatehub.models.otp import OtpAttempt, OtpChannel, OtpPurpose, OtpRequest  # noqa: F401
from estatehub.models.session import UserSession  # noqa: F401
from estatehub.models.user import User  # noqa: F401
