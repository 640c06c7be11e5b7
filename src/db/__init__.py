"""
Database module for Niraiva.

Provides Supabase client and repository classes for data access.
"""

from src.db.client import get_client, get_admin_client, create_auth_client, is_configured, SupabaseClient
from src.db.repositories import (
  ProfileRepository,
  RoleRepository,
  ReportRepository,
  SnapshotRepository,
  HealthParameterRepository,
  ConditionRepository,
  MedicationRepository,
  DoctorNoteRepository,
  ConsentRepository,
  TimelineRepository,
  PersonalRecordRepository,
  DoctorPatientRepository,
  DocumentStorage,
)

__all__ = [
  "get_client",
  "get_admin_client",
  "create_auth_client",
  "is_configured",
  "SupabaseClient",
  "ProfileRepository",
  "RoleRepository",
  "ReportRepository",
  "SnapshotRepository",
  "HealthParameterRepository",
  "ConditionRepository",
  "MedicationRepository",
  "DoctorNoteRepository",
  "ConsentRepository",
  "TimelineRepository",
  "PersonalRecordRepository",
  "DoctorPatientRepository",
  "DocumentStorage",
]
