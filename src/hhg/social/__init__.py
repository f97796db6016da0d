"""Social graph guard: friendships and best friends."""
