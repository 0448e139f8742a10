"""ClientDesk: agency CRM and client portal."""
