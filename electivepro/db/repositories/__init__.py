"""Repository modules: thin query helpers over `app_session()`."""
