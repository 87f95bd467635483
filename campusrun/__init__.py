"""CampusRun: ranked runner dispatch for campus errands and commissions."""
