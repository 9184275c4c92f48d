#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""Advertisement storage of a media node.

Every topic gets at most `capacity` advertisement slots. An ad lives for
`ad_lifetime` steps, then its slot becomes free again. Registrations
which find no free slot are answered with the number of steps until the
oldest ad of the topic expires, the advertiser is expected to come back
after that.
"""

__author__ = "XiaoHuiHui"

import logging
from collections import deque

from enr.datatypes import ENR

logger = logging.getLogger("discv5.topic")


class TopicTable:
    def __init__(self, capacity: int, ad_lifetime: int) -> None:
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive, got {capacity}.")
        if ad_lifetime <= 0:
            raise ValueError(
                f"Ad lifetime must be positive, got {ad_lifetime}."
            )
        self.capacity = capacity
        self.ad_lifetime = ad_lifetime
        self.ads: dict[bytes, deque[tuple[ENR, int]]] = {}

    def __len__(self) -> int:
        return sum(len(ads) for ads in self.ads.values())

    def _purge(self, topic: bytes, now: int) -> deque[tuple[ENR, int]]:
        ads = self.ads.setdefault(topic, deque())
        while len(ads) > 0 and ads[0][1] + self.ad_lifetime <= now:
            enr, _ = ads.popleft()
            logger.debug(f"Ad of {enr} for {topic.hex()[:7]} expired.")
        return ads

    def register(self, topic: bytes, enr: ENR, now: int) -> int:
        """Try to place an ad of the given record.

        :param bytes topic: Topic hash.
        :param ENR enr: Record of the advertiser.
        :param int now: Current step of the media node.
        :return int: Zero if the ad is placed, otherwise the steps to
            wait before the next attempt.
        """
        ads = self._purge(topic, now)
        if any(placed.node_id == enr.node_id for placed, _ in ads):
            return 0
        if len(ads) < self.capacity:
            ads.append((enr, now))
            logger.debug(f"Ad of {enr} for {topic.hex()[:7]} placed.")
            return 0
        _, oldest = ads[0]
        return oldest + self.ad_lifetime - now

    def get_ads(self, topic: bytes, now: int) -> list[ENR]:
        return [enr for enr, _ in self._purge(topic, now)]

    def clear(self) -> None:
        self.ads.clear()
