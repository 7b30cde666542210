"""QuickServe request gate: authentication, tenant resolution and isolation."""
