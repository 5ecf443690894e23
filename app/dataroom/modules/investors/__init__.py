"""
Investors: admin management of the investor list and the NDA click-through.

- Admins manage the investor list; hand-set statuses are limited to the manual stages
- An investor accepts the active NDA text once; the consent record is kept on the investor
- The signed NDA can be downloaded as a PDF afterwards
"""
