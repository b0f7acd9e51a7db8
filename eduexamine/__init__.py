"""Application package for the EduExamine exam-management API."""
