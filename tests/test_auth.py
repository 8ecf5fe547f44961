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

import pytest
from profilekeep import LogOnInfo, ProfileKeep, ProfileRecord
from profilekeep.usrsys.tk import TokenRecord

from .utils import (
    CONFIRMED_VALID_USER,
    INACTIVE_VALID_USER,
    INVALID_PASSWORD,
    UNCONFIRMED_VALID_USER,
    VALID_PASSWORD,
    create_profile,
    keeper,
)


class PrefixIssuer(object):
    def __init__(self) -> None:
        self.issued = []

    async def issue(self, profile: ProfileRecord) -> str:
        self.issued.append(profile.identity)
        return "issued-for-{}".format(profile.identity)


class TestLogOnInfo:
    def test_check_validity(self):
        assert LogOnInfo(CONFIRMED_VALID_USER, VALID_PASSWORD).check_validity()
        assert LogOnInfo(CONFIRMED_VALID_USER, "").check_validity()
        assert not LogOnInfo(CONFIRMED_VALID_USER, None).check_validity()
        assert not LogOnInfo("not-email-addr@...", VALID_PASSWORD).check_validity()


class TestAuthProvider:
    @pytest.mark.asyncio
    async def test_log_on(self, keeper: ProfileKeep):
        profile = await create_profile(keeper, CONFIRMED_VALID_USER, confirmed=True)
        answer = await keeper.auth_provider.log_on(
            LogOnInfo(CONFIRMED_VALID_USER, VALID_PASSWORD)
        )
        assert answer.success
        assert answer.token
        assert answer.profileid == profile.identity
        record = await keeper.storage_hub.token_records.find_token(answer.token)
        assert record and record.profileid == profile.identity
        assert record.expiration

    @pytest.mark.asyncio
    async def test_log_on_with_wrong_password(self, keeper: ProfileKeep):
        await create_profile(keeper, CONFIRMED_VALID_USER, confirmed=True)
        answer = await keeper.auth_provider.log_on(
            LogOnInfo(CONFIRMED_VALID_USER, INVALID_PASSWORD)
        )
        assert not answer.success
        assert answer.token is None and answer.profileid is None

    @pytest.mark.asyncio
    async def test_log_on_unconfirmed(self, keeper: ProfileKeep):
        await create_profile(keeper, UNCONFIRMED_VALID_USER)
        answer = await keeper.auth_provider.log_on(
            LogOnInfo(UNCONFIRMED_VALID_USER, VALID_PASSWORD)
        )
        assert not answer.success

    @pytest.mark.asyncio
    async def test_log_on_deactivated(self, keeper: ProfileKeep):
        await create_profile(
            keeper, INACTIVE_VALID_USER, confirmed=True, deactivated=True
        )
        answer = await keeper.auth_provider.log_on(
            LogOnInfo(INACTIVE_VALID_USER, VALID_PASSWORD)
        )
        assert not answer.success

    @pytest.mark.asyncio
    async def test_log_on_unknown(self, keeper: ProfileKeep):
        answer = await keeper.auth_provider.log_on(
            LogOnInfo("nobody@somewhere.com", VALID_PASSWORD)
        )
        assert not answer.success

    @pytest.mark.asyncio
    @pytest.mark.parametrize("password", [None, ""])
    async def test_log_on_without_password(self, keeper: ProfileKeep, password):
        await create_profile(keeper, CONFIRMED_VALID_USER, confirmed=True)
        answer = await keeper.auth_provider.log_on(
            LogOnInfo(CONFIRMED_VALID_USER, password)
        )
        assert not answer.success

    @pytest.mark.asyncio
    async def test_check_token(self, keeper: ProfileKeep):
        profile = await create_profile(keeper, CONFIRMED_VALID_USER, confirmed=True)
        answer = await keeper.auth_provider.log_on(
            LogOnInfo(CONFIRMED_VALID_USER, VALID_PASSWORD)
        )
        assert answer.token
        owner = await keeper.auth_provider.check_token(answer.token)
        assert owner and owner.identity == profile.identity
        assert not await keeper.auth_provider.check_token("not-a-token")

    @pytest.mark.asyncio
    async def test_log_off(self, keeper: ProfileKeep):
        auth = keeper.auth_provider
        profile = await create_profile(keeper, CONFIRMED_VALID_USER, confirmed=True)
        answer = await auth.log_on(LogOnInfo(CONFIRMED_VALID_USER, VALID_PASSWORD))
        assert answer.token
        assert await auth.log_off(profile.identity, answer.token)
        assert await auth.log_off(profile.identity, answer.token)
        assert not await auth.check_token(answer.token)
        stored = await keeper.profile_service.get_profile(profile.identity)
        assert stored and stored.blacklisted_tokens == [answer.token]
        # other sessions are kept
        another = await auth.log_on(LogOnInfo(CONFIRMED_VALID_USER, VALID_PASSWORD))
        assert another.token and await auth.check_token(another.token)
        assert not await auth.log_off("nobody", answer.token)

    @pytest.mark.asyncio
    async def test_expired_token(self, keeper: ProfileKeep):
        profile = await create_profile(keeper, CONFIRMED_VALID_USER, confirmed=True)
        await keeper.storage_hub.token_records.store(
            TokenRecord(token="old", profileid=profile.identity, expiration=1)
        )
        assert not await keeper.auth_provider.check_token("old")

    @pytest.mark.asyncio
    async def test_token_of_deactivated_profile(self, keeper: ProfileKeep):
        profile = await create_profile(keeper, CONFIRMED_VALID_USER, confirmed=True)
        answer = await keeper.auth_provider.log_on(
            LogOnInfo(CONFIRMED_VALID_USER, VALID_PASSWORD)
        )
        assert answer.token
        await keeper.profile_service.deactivate_profile(profile.identity).wait()
        assert not await keeper.auth_provider.check_token(answer.token)

    @pytest.mark.asyncio
    async def test_custom_token_issuer(self):
        issuer = PrefixIssuer()
        instance = ProfileKeep(
            database_path=":mem:",
            password_iterations=16,
            password_salt_length=16,
            password_hash_length=64,
            token_issuer=issuer,
        )
        try:
            profile = await create_profile(instance, CONFIRMED_VALID_USER, confirmed=True)
            answer = await instance.auth_provider.log_on(
                LogOnInfo(CONFIRMED_VALID_USER, VALID_PASSWORD)
            )
            assert answer.success
            assert answer.token == "issued-for-{}".format(profile.identity)
            assert issuer.issued == [profile.identity]
        finally:
            instance.close()


class TestTokenRecord:
    def test_expiration(self):
        record = TokenRecord.new("someone", expiration_offset_seconds=60)
        assert record.expiration
        assert record.is_available()
        assert record.is_available(record.expiration - 1)
        assert not record.is_available(record.expiration)

    def test_never_expires(self):
        record = TokenRecord.new("someone", expiration_offset_seconds=None)
        assert record.expiration is None
        assert record.is_available(2 ** 40)
        assert TokenRecord.new("someone").token != record.token
