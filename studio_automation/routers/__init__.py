"""HTTP routers for the operational surface."""
