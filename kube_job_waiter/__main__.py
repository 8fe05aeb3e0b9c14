import sys

from kube_job_waiter.cli import main

sys.exit(main())
