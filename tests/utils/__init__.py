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

from datetime import date
from typing import Optional

import pytest
from profilekeep import FailureReason, ProfileKeep, ProfileRecord

VALID_PASSWORD = "P@ssw0rd"
INVALID_PASSWORD = "bladiblah"
CONFIRMED_VALID_USER = "someone@somewhere.com"
UNCONFIRMED_VALID_USER = "someone-else@somewhere.com"
INACTIVE_VALID_USER = "someone-inactive@somewhere.com"


@pytest.fixture
async def keeper():
    # Few iterations and short keys keep tests fast, the record format is the same.
    instance = ProfileKeep(
        database_path=":mem:",
        password_iterations=16,
        password_salt_length=16,
        password_hash_length=64,
        debug=True,
    )
    try:
        yield instance
    finally:
        instance.close()


def new_profile_record(
    email: Optional[str], full_name: str = "That Person", **kwargs
) -> ProfileRecord:
    kwargs.setdefault("password", VALID_PASSWORD)
    kwargs.setdefault("birthday", date(2000, 1, 1))
    return ProfileRecord.new(email=email, full_name=full_name, **kwargs)


async def create_profile(
    keeper: ProfileKeep,
    email: str,
    *,
    confirmed: bool = False,
    deactivated: bool = False,
) -> ProfileRecord:
    """Create a profile through the services and bring it to the state asked."""
    service = keeper.profile_service
    stream = service.create_new_profile(new_profile_record(email))
    assert await stream.collect() == [FailureReason.NONE]
    profile = await service.get_profile(stream.value)
    assert profile
    if confirmed:
        reasons = await service.confirm_profile_email_address(
            email, profile.email_confirmation_token
        ).collect()
        assert reasons == [FailureReason.NONE]
    if deactivated:
        reasons = await service.deactivate_profile(profile.identity).collect()
        assert reasons == [FailureReason.NONE]
    profile = await service.get_profile(profile.identity)
    assert profile
    return profile
