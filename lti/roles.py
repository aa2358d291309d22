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

import enum
from typing import Iterable, Optional

INSTRUCTOR_MARKERS = ("Instructor", "TeachingAssistant")
LEARNER_MARKER = "Learner"


class RoleClass(str, enum.Enum):
    instructor = 'Instructor'
    learner = 'Learner'
    other = 'Other'


class RoleClassifier:
    """Maps LTI role URNs to the coarse classes the tool cares about.

    Matching is a case-sensitive substring test, so both full URNs
    (http://purl.imsglobal.org/vocab/lis/v2/membership#Instructor) and
    short names (Instructor) are recognised. Instructor wins when a user
    holds both kinds of role.
    """

    @staticmethod
    def is_instructor(roles: Optional[Iterable[str]]) -> bool:
        return any(marker in role for role in roles or [] for marker in INSTRUCTOR_MARKERS)

    @staticmethod
    def is_learner(roles: Optional[Iterable[str]]) -> bool:
        return any(LEARNER_MARKER in role for role in roles or [])

    @classmethod
    def classify(cls, roles: Optional[Iterable[str]]) -> RoleClass:
        roles = [role for role in roles or [] if isinstance(role, str)]
        if cls.is_instructor(roles):
            return RoleClass.instructor
        if cls.is_learner(roles):
            return RoleClass.learner
        return RoleClass.other


def is_instructor_session(session) -> bool:
    """Role check against the roles stored on a session row"""
    return RoleClassifier.classify(session.user_roles) == RoleClass.instructor

def is_learner_session(session) -> bool:
    return RoleClassifier.classify(session.user_roles) == RoleClass.learner
