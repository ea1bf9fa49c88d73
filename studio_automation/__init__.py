"""Poll-based email automation engine for studio appointments, customers and requests."""
