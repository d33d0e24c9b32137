from rq import Worker, Queue

from apps.workers.jobs import _rq_redis


def main():
    conn = _rq_redis()
    q_default = Queue("default", connection=conn)
    worker = Worker([q_default], connection=conn)
    worker.work(with_scheduler=True)

if __name__ == "__main__":
    main()
