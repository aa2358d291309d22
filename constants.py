#
# Copyright 2025 EDT&Partners
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

PROFESSORS_ID="professors.id"
INTERNAL_SERVER_ERROR_MESSAGE="Internal Server Error"
NOT_AUTHENTICATED_MESSAGE="Not authenticated"
INSTRUCTOR_REQUIRED_MESSAGE="Instructor access required"
PROFESSOR_NOT_FOUND_MESSAGE="Professor not found"
COURSE_NOT_FOUND_MESSAGE="Course not found"

# Cookies
STATE_COOKIE="lti_state"
NONCE_COOKIE="lti_nonce"
SESSION_COOKIE="lti_session"
HANDSHAKE_COOKIE_MAX_AGE=600
SESSION_COOKIE_MAX_AGE=86400

# Sessions
SESSION_DURATION_HOURS=24

# Platform key set cache
KEY_SET_REFRESH_INTERVAL=600
KEY_SET_FORCED_REFRESH_COOLDOWN=30
TOKEN_EXPIRY_LEEWAY=30

# Deep linking
DEEP_LINK_RESPONSE_TTL=600
LTI_VERSION="1.3.0"
DEEP_LINKING_REQUEST_MESSAGE_TYPE="LtiDeepLinkingRequest"
DEEP_LINKING_RESPONSE_MESSAGE_TYPE="LtiDeepLinkingResponse"

# LTI claim URNs
LTI_CLAIM_PREFIX="https://purl.imsglobal.org/spec/lti/claim/"
CLAIM_MESSAGE_TYPE=LTI_CLAIM_PREFIX + "message_type"
CLAIM_VERSION=LTI_CLAIM_PREFIX + "version"
CLAIM_DEPLOYMENT_ID=LTI_CLAIM_PREFIX + "deployment_id"
CLAIM_TARGET_LINK_URI=LTI_CLAIM_PREFIX + "target_link_uri"
CLAIM_RESOURCE_LINK=LTI_CLAIM_PREFIX + "resource_link"
CLAIM_CONTEXT=LTI_CLAIM_PREFIX + "context"
CLAIM_ROLES=LTI_CLAIM_PREFIX + "roles"
CLAIM_LIS=LTI_CLAIM_PREFIX + "lis"
CLAIM_CUSTOM=LTI_CLAIM_PREFIX + "custom"
CLAIM_DEEP_LINKING_SETTINGS="https://purl.imsglobal.org/spec/lti-dl/claim/deep_linking_settings"
CLAIM_CONTENT_ITEMS="https://purl.imsglobal.org/spec/lti-dl/claim/content_items"
CLAIM_DL_DATA="https://purl.imsglobal.org/spec/lti-dl/claim/data"

# Course defaults
DEFAULT_ASSISTANT_NAME="AI Assistant"
DEFAULT_MODEL="gpt-4"
DEFAULT_MAX_TOKENS="1000"
DEFAULT_TEMPERATURE="0.7"
UNKNOWN_USER_NAME="Unknown User"
API_KEY_PREFIX="sk-"
