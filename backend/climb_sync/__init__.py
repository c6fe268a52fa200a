"""Profile synchronization and fallback persistence for Climb onboarding."""
