# Supabase tables used by the call-event webhook.
# SCHEMA_SQL is kept for reference; run it in the Supabase SQL editor.

WEBHOOK_EVENTS = "webhook_events"
BATCH_CALL_MAPPINGS = "batch_call_mappings"
CALL_SESSIONS = "call_sessions"
CALL_LOGS = "call_logs"
CALL_SUMMARIES = "call_summaries"
RELATIVES = "relatives"

CALL_LOG_CONFLICT = "provider,provider_call_id"
CALL_SUMMARY_CONFLICT = "provider_call_id"

# Derived from each delivery; a null here replaces the stored value.
SUMMARY_DERIVED_FIELDS = ("mood", "mood_score", "key_points", "tl_dr")

PROVIDER_BATCH = "elevenlabs"
PROVIDER_IN_APP = "webrtc"

CALL_TYPE_BATCH = "batch_call"
CALL_TYPE_IN_APP = "in_app_call"


SCHEMA_SQL = """
CREATE TABLE webhook_events (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  provider text NOT NULL,
  provider_call_id text,
  household_id uuid,
  payload jsonb NOT NULL,
  signature text,
  resolution_status text,
  resolution_strategy text,
  low_confidence boolean DEFAULT false,
  received_at timestamptz DEFAULT now()
);

CREATE TABLE batch_call_mappings (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  batch_id text NOT NULL,
  phone_number text NOT NULL,
  household_id uuid NOT NULL,
  relative_id uuid NOT NULL,
  provider_call_id text,
  resolved_at timestamptz,
  created_at timestamptz DEFAULT now(),
  UNIQUE (batch_id, phone_number)
);

CREATE TABLE call_sessions (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  household_id uuid NOT NULL,
  relative_id uuid NOT NULL,
  provider text DEFAULT 'webrtc',
  call_type text DEFAULT 'in_app_call',
  created_at timestamptz DEFAULT now()
);

CREATE TABLE call_logs (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  provider text NOT NULL,
  provider_call_id text NOT NULL,
  user_id uuid,
  household_id uuid NOT NULL,
  relative_id uuid NOT NULL,
  call_type text,
  call_outcome text CHECK (call_outcome IN ('answered','failed','missed','busy')),
  call_duration int,
  emergency_flag boolean DEFAULT false,
  health_concerns_detected boolean DEFAULT false,
  audio_recording_url text,
  audio_base64 text,
  session_id uuid,
  timestamp timestamptz DEFAULT now(),
  UNIQUE (provider, provider_call_id)
);

CREATE TABLE call_summaries (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  provider text,
  provider_call_id text NOT NULL UNIQUE,
  call_log_id uuid REFERENCES call_logs(id) ON DELETE CASCADE,
  household_id uuid NOT NULL,
  relative_id uuid NOT NULL,
  mood text,
  mood_score int CHECK (mood_score BETWEEN 1 AND 5),
  key_points jsonb,
  transcript_url text,
  tl_dr text,
  full_audio_base64 text,
  created_at timestamptz DEFAULT now()
);

CREATE TABLE relatives (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  household_id uuid NOT NULL,
  first_name text,
  last_name text,
  phone_e164 text
);
CREATE INDEX relatives_phone_e164_idx ON relatives (phone_e164);
"""
