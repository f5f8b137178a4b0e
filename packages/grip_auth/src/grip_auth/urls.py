class GripBaseUrls:
    LOCAL = "http://localhost:3001/api"


class GripAuthUrls:
    SIGNUP = "/auth/signup"
    LOGIN = "/auth/login"
    LOGOUT = "/auth/logout"
    PROFILE = "/auth/profile"
    FORGOT_PASSWORD = "/auth/forgot-password"
    RESET_PASSWORD = "/auth/reset-password"
    CHANGE_PASSWORD = "/auth/change-password"
    VERIFY_EMAIL = "/auth/verify-email"
