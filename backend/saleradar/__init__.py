"""SaleRadar backend: nearby pop-up sale discovery and notifications."""
