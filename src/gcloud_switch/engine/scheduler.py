"""background credential checks, deduplicated per account."""
import logging
import queue
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Set

from ..profiles.models import AuthState, AuthStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CheckResult:
    account: str
    generation: int
    state: AuthState
    checked_at: datetime


def _start_thread(account: str, target: Callable[[], None]) -> None:
    threading.Thread(target=target, name=f"auth-check-{account}", daemon=True).start()


class ValidationScheduler:
    """
    runs credential checks on worker threads and hands results back through a queue.

    all bookkeeping belongs to the thread that calls schedule/refresh/poll;
    workers only put immutable results on the queue. every check carries the
    generation it was started under, and a result whose generation is no
    longer current for its account is dropped, so a slow earlier check can
    never overwrite a newer one.
    """

    def __init__(
        self,
        oracle,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
        spawn: Callable[[str, Callable[[], None]], None] = _start_thread,
    ):
        self.oracle = oracle
        self.timeout = timeout
        self._clock = clock
        self._spawn = spawn
        self._results: "queue.Queue[_CheckResult]" = queue.Queue()
        self._generation: Dict[str, int] = {}
        self._deadlines: Dict[str, float] = {}
        self._checked: Set[str] = set()

    @property
    def in_flight(self) -> Set[str]:
        return set(self._deadlines)

    def is_checking(self, account: str) -> bool:
        return account in self._deadlines

    def schedule(self, accounts: Iterable[str]) -> List[str]:
        """
        start checks for accounts neither in flight nor already checked this session.

        returns:
            accounts a check was started for
        """
        started = []
        for account in sorted(set(accounts)):
            if not account or account in self._deadlines or account in self._checked:
                continue
            self._start(account)
            started.append(account)
        return started

    def refresh(self, accounts: Iterable[str]) -> List[str]:
        """start fresh checks regardless of earlier results, superseding any in flight."""
        started = []
        for account in sorted(set(accounts)):
            if not account:
                continue
            self._checked.discard(account)
            self._start(account)
            started.append(account)
        return started

    def _start(self, account: str) -> None:
        generation = self._generation.get(account, 0) + 1
        self._generation[account] = generation
        self._deadlines[account] = self._clock() + self.timeout
        logger.debug(f"checking {account} (generation {generation})")
        self._spawn(account, lambda: self._run_check(account, generation))

    def _run_check(self, account: str, generation: int) -> None:
        state = self._evaluate(account)
        self._results.put(
            _CheckResult(account, generation, state, datetime.now(timezone.utc))
        )

    def _evaluate(self, account: str) -> AuthState:
        # never report VALID on uncertainty
        try:
            record = self.oracle.lookup(account)
        except Exception as e:
            logger.warning(f"credential lookup for {account} failed: {e}")
            return AuthState.EXPIRED
        if record is None:
            return AuthState.UNKNOWN
        try:
            return self.oracle.check_liveness(record)
        except Exception as e:
            logger.warning(f"liveness check for {account} failed: {e}")
            return AuthState.EXPIRED

    def poll(self, timeout: float = 0.0) -> List[AuthStatus]:
        """
        collect finished checks.

        args:
            timeout: seconds to wait for the first result when checks are in flight

        returns:
            statuses to merge, oldest first; stale results are already dropped
        """
        raw = []
        if timeout > 0 and self._deadlines:
            try:
                raw.append(self._results.get(timeout=timeout))
            except queue.Empty:
                pass
        while True:
            try:
                raw.append(self._results.get_nowait())
            except queue.Empty:
                break

        statuses = []
        for result in raw:
            if self._generation.get(result.account) != result.generation:
                logger.debug(f"discarding superseded result for {result.account}")
                continue
            self._deadlines.pop(result.account, None)
            self._checked.add(result.account)
            statuses.append(
                AuthStatus(account=result.account, state=result.state, checked_at=result.checked_at)
            )
        statuses.extend(self._expire())
        return statuses

    def _expire(self) -> List[AuthStatus]:
        now = self._clock()
        expired = []
        for account, deadline in list(self._deadlines.items()):
            if now < deadline:
                continue
            logger.warning(f"credential check for {account} timed out")
            # bump so the late result is discarded when it arrives
            self._generation[account] += 1
            del self._deadlines[account]
            self._checked.add(account)
            expired.append(
                AuthStatus(
                    account=account,
                    state=AuthState.EXPIRED,
                    checked_at=datetime.now(timezone.utc),
                )
            )
        return expired

    def wait(self, timeout: float) -> List[AuthStatus]:
        """block until every in-flight check has finished or timed out."""
        statuses = []
        end = self._clock() + timeout
        while self._deadlines:
            remaining = end - self._clock()
            if remaining <= 0:
                break
            statuses.extend(self.poll(timeout=min(remaining, 0.25)))
        return statuses
