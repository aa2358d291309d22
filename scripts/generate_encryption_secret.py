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

"""
Generate the master secret used to encrypt course API keys at rest.

If this secret is lost, stored API keys can no longer be decrypted.
Use a different secret per environment.
"""
from lti.secrets import generate_encryption_secret


def main():
    secret = generate_encryption_secret()
    print(f'ENCRYPTION_SECRET="{secret}"')
    print(f"\nSecret length: {len(secret)} characters")


if __name__ == "__main__":
    main()
