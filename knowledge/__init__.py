"""
Niraiva clinical knowledge base.

Contains reference data used when shaping patient records:
- Primary vitals eligible for the dashboard
- Primary chronic conditions tracked for doctors
- Warning thresholds for snapshot vitals
"""
