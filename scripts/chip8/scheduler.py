# CHIP-8 FRAME SCHEDULER
# the CPU steps as fast as the host loop calls tick(), while timers and
# screen updates are only let through once every 1/60 of a second

import time

FRAME_HZ = 60


class FrameScheduler:
    def __init__(self, cpu, clock=time.monotonic, frame_hz=FRAME_HZ):
        self.cpu = cpu
        self.clock = clock
        self.frame_interval = 1.0 / frame_hz
        self.last_frame = clock()
        self.frames = 0
        self.steps = 0

    def __repr__(self):
        return f"FrameScheduler(frames={self.frames}, steps={self.steps})"

    def frame_due(self):
        """True if at least one frame interval has elapsed since the last committed frame"""
        return self.clock() - self.last_frame >= self.frame_interval

    def tick(self):
        """step the CPU once, return True if this step was a frame boundary"""
        frame_boundary = self.frame_due()
        if frame_boundary:
            # keep the cadence anchored to the schedule, unless the host fell more than a frame behind
            self.last_frame += self.frame_interval
            now = self.clock()
            if now - self.last_frame >= self.frame_interval:
                self.last_frame = now
            self.frames += 1
        self.steps += 1
        self.cpu.step(frame_boundary)
        return frame_boundary
