from __future__ import annotations

import asyncio
from unittest import IsolatedAsyncioTestCase

from .locks import GAME, SESSION, USER, LockCoordinator


class LockCoordinatorTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.locks = LockCoordinator()

    async def test_waiters_admitted_in_arrival_order(self):
        order: list[int] = []

        async def body(i: int):
            async def work():
                order.append(i)
                await asyncio.sleep(0)

            await self.locks.run(SESSION, work)

        async with self.locks.session:
            tasks = [asyncio.create_task(body(i)) for i in range(5)]
            await asyncio.sleep(0.01)
            self.assertEqual(order, [])

        await asyncio.gather(*tasks)
        self.assertEqual(order, [0, 1, 2, 3, 4])

    async def test_failing_body_releases_lock(self):
        async def boom():
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            await self.locks.run(GAME, boom)
        self.assertFalse(self.locks.game.locked())

        async def ok():
            return 42

        self.assertEqual(await self.locks.run(GAME, ok), 42)

    async def test_domains_are_independent(self):
        async with self.locks.user:
            async with self.locks(GAME):
                self.assertFalse(self.locks.session.locked())
                self.assertTrue(self.locks.user.locked())

    async def test_unknown_domain(self):
        with self.assertRaises(KeyError):
            self.locks("everything")
        self.assertEqual(set(self.locks.locks), {USER, GAME, SESSION})
