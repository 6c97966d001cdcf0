from app.models.user import User
from app.schemas.user import PrivacySettingsPublic, UserPublic, UserSummary


def to_public(user: User) -> UserPublic:
    return UserPublic.model_validate(user)


def to_summary(user: User) -> UserSummary:
    return UserSummary.model_validate(user)


def to_privacy_settings(user: User) -> PrivacySettingsPublic:
    return PrivacySettingsPublic.model_validate(user)
