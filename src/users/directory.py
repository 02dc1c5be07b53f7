"""
User profile lookups and validated partial updates
"""
from datetime import datetime, timezone

from pydantic import ValidationError

from src.models.user import (
    PreferencesPatch,
    ProfilePatch,
    UserPreferences,
    UserProfile,
    VehicleConfig,
    VehicleConfigPatch,
)
from src.models.vehicle import VariantCatalog
from src.storage.base import DataStore
from src.utils.errors import InvalidInput, NotFound
from src.utils.logger import info


class UserDirectory:

    def __init__(self, store: DataStore, catalog: VariantCatalog = None):
        self.store = store
        self.catalog = catalog or VariantCatalog()

    def get_or_create_user(self, user_id: str) -> UserProfile:
        """Unknown users get a default profile that is persisted on first sight"""
        if not user_id:
            raise InvalidInput("user_id is required")
        try:
            return self.store.get_user(user_id)
        except NotFound:
            profile = UserProfile(user_id=user_id)
            self.store.put_user(profile)
            info(f"Created default profile for user {user_id}", 'range_service')
            return profile

    def update_vehicle_config(self, user_id: str, patch) -> UserProfile:
        patch = self._parse(VehicleConfigPatch, patch)
        changes = patch.model_dump(exclude_none=True)
        if 'variant_id' in changes:
            changes['variant_id'] = self.catalog.canonical_id(changes['variant_id'])

        profile = self.get_or_create_user(user_id)
        merged = profile.vehicle_config.model_dump()
        merged.update(changes)
        updated = profile.model_copy(update={
            'vehicle_config': VehicleConfig.model_validate(merged),
            'updated_at': datetime.now(timezone.utc),
        })
        self.store.put_user(updated)
        return updated

    def update_preferences(self, user_id: str, patch) -> UserProfile:
        patch = self._parse(PreferencesPatch, patch)
        profile = self.get_or_create_user(user_id)
        merged = profile.preferences.model_dump()
        merged.update(patch.model_dump(exclude_none=True))
        updated = profile.model_copy(update={
            'preferences': UserPreferences.model_validate(merged),
            'updated_at': datetime.now(timezone.utc),
        })
        self.store.put_user(updated)
        return updated

    def update_profile(self, user_id: str, patch) -> UserProfile:
        patch = self._parse(ProfilePatch, patch)
        profile = self.get_or_create_user(user_id)
        updated = profile.model_copy(update={
            **patch.model_dump(exclude_none=True),
            'updated_at': datetime.now(timezone.utc),
        })
        self.store.put_user(updated)
        return updated

    @staticmethod
    def _parse(model, patch):
        if isinstance(patch, model):
            return patch
        try:
            return model.model_validate(patch)
        except ValidationError as e:
            raise InvalidInput(f"Invalid {model.__name__}: {e}") from e
