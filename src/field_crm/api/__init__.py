"""HTTP routers for jobs, dispatch, technicians, commissions and health."""
