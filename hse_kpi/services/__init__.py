"""Business logic layer: catalog, KPI values, grid, analytics and export."""
