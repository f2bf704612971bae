"""Service layer backing the HTTP routes."""
