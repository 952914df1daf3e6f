#!/usr/bin/env python3
"""
Database initialization script for Scripture Quiz
Run this to check the Supabase connection and print the lifecycle schema
"""

import sys

from scripturequiz.database import test_supabase_connection

SCHEMA_SQL = """
ALTER TABLE quizzes
    ADD COLUMN IF NOT EXISTS scheduling_status TEXT DEFAULT 'legacy'
        CHECK (scheduling_status IN ('legacy', 'deferred', 'scheduled')),
    ADD COLUMN IF NOT EXISTS time_configuration JSONB,
    ADD COLUMN IF NOT EXISTS scheduled_by UUID,
    ADD COLUMN IF NOT EXISTS scheduled_at TIMESTAMPTZ;

CREATE TABLE IF NOT EXISTS enrollments (
    id UUID PRIMARY KEY,
    quiz_id UUID NOT NULL REFERENCES quizzes(id) ON DELETE CASCADE,
    student_id UUID NOT NULL,
    status TEXT NOT NULL DEFAULT 'enrolled'
        CHECK (status IN ('enrolled', 'in_progress', 'completed', 'abandoned', 'timeout')),
    enrolled_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    started_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    is_reassignment BOOLEAN NOT NULL DEFAULT false,
    parent_enrollment_id UUID REFERENCES enrollments(id),
    reassignment_reason TEXT,
    reassigned_at TIMESTAMPTZ,
    reassigned_by UUID,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS quiz_attempts (
    id UUID PRIMARY KEY,
    quiz_id UUID NOT NULL REFERENCES quizzes(id) ON DELETE CASCADE,
    student_id UUID NOT NULL,
    enrollment_id UUID REFERENCES enrollments(id),
    status TEXT NOT NULL DEFAULT 'in_progress'
        CHECK (status IN ('in_progress', 'completed', 'abandoned', 'timeout')),
    score NUMERIC,
    total_correct INTEGER,
    total_questions INTEGER,
    start_time TIMESTAMPTZ,
    end_time TIMESTAMPTZ,
    time_spent INTEGER,
    answers JSONB NOT NULL DEFAULT '[]',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

-- one original enrollment per student and quiz
CREATE UNIQUE INDEX IF NOT EXISTS enrollments_one_original
    ON enrollments (quiz_id, student_id) WHERE NOT is_reassignment;

-- at most one pending reassignment per student and quiz
CREATE UNIQUE INDEX IF NOT EXISTS enrollments_one_pending_reassignment
    ON enrollments (quiz_id, student_id)
    WHERE is_reassignment AND status IN ('enrolled', 'in_progress');

-- one attempt in progress per enrollment
CREATE UNIQUE INDEX IF NOT EXISTS quiz_attempts_one_active
    ON quiz_attempts (enrollment_id) WHERE status = 'in_progress';

CREATE INDEX IF NOT EXISTS quiz_attempts_status_updated ON quiz_attempts (status, updated_at);
"""

def init_supabase():
    """Test Supabase connection and print the schema to apply"""
    print("🔄 Testing Supabase connection...")

    if not test_supabase_connection():
        print("❌ Could not reach Supabase")
        print("\n💡 Troubleshooting:")
        print("1. Check your .env file has correct Supabase credentials")
        print("2. Make sure SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are set")
        print("3. Verify your Supabase project is active")
        return False

    print("✅ Supabase connection successful!")
    print("\n📋 Run the following in the Supabase SQL Editor:")
    print(SCHEMA_SQL)
    print("The unique indexes are required: duplicate starts and reassignments are rejected by them.")
    return True

if __name__ == "__main__":
    sys.exit(0 if init_supabase() else 1)
