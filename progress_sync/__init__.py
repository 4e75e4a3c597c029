"""Client-side progress tracking and synchronization engine."""
