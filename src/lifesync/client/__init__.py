"""Client-side components: auth, transport, local state, sync."""
