# Copyright (C) 2021 The Profilekeep Contributors
#
# This file is part of Profilekeep.
#
# Profilekeep is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# Profilekeep is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with Profilekeep.  If not, see <http://www.gnu.org/licenses/>.

"""The user system for Profilekeep.

User system process all the things about users:

- Profiles (`usr`, `storage`, `profile`)
- E-mail address syntax (`addr`)
- Authentication and session tokens (`auth`, `tk`)

## Profile lifecycle
A profile is created unconfirmed, confirmed with the token minted for its e-mail address, and may be deactivated.
`profile.ProfileService` runs the transitions and reports every reason an operation failed, not only the first one.
`storage.ProfileRecordStorage` keeps what must hold for every stored profile, whoever writes it.
"""
