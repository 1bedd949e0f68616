"""Todo Auth - authentication service and API gateway for the todo application."""
